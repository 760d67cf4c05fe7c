"""
Scheduling module.

Per-plan timers, the reconciliation sweep and the in-flight guard.
"""
from .coordinator import PlanTimer, ScheduleCoordinator
from .guard import InFlightGuard

__all__ = ["InFlightGuard", "PlanTimer", "ScheduleCoordinator"]
