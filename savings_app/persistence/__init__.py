"""Plan persistence."""
from .plan_store import PlanStore

__all__ = ["PlanStore"]
