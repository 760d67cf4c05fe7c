"""
Utility functions module.

Common utility functions for time handling shared across the system.

Time Semantics:
- All persisted timestamps are timezone-aware UTC datetimes
- The execution window of a plan is advanced only from the time a
  settlement actually happened, never from the scheduled time
"""
