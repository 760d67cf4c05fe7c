"""
Recovery strategy classifications for error handling.

These mixins help categorize errors by their recovery characteristics
and guide the error handling strategy of the scheduler.
"""

from typing import Any, Dict, Optional


class RecoverableError(Exception):
    """Mixin for errors that are retried automatically on the next schedule fire."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class UnrecoverableError(Exception):
    """Mixin for errors that require human intervention."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False
