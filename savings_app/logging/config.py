"""
Centralized logging configuration for the periodic savings engine.

This module provides standardized logging configuration using structlog
for all components. All logging throughout the system should use this
configuration to ensure consistent formatting and structured logging.

Signing keys must never reach a log sink; the ``redact_secrets`` processor
is always installed as a last line of defence.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, FilteringBoundLogger, WrappedLogger

SECRET_KEY_MARKERS = ("signing_key", "private_key", "secret", "password", "encrypted_key")
REDACTED = "[REDACTED]"


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values of event keys that look like credentials."""
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if any(marker in lowered for marker in SECRET_KEY_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_execution_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for settlement execution outcomes.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger bound to the execution subsystem
    """
    return get_logger(name).bind(
        subsystem="execution",
        audit_trail=True
    )


def get_state_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for plan state transitions.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger bound to the state machine subsystem
    """
    return get_logger(name).bind(
        subsystem="state_machine",
        audit_trail=True
    )


def log_state_transition(
    logger: FilteringBoundLogger,
    pool_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a plan state transition with standardized format.

    Args:
        logger: Structlog logger instance
        pool_id: Pool of the plan transitioning
        from_state: Current state
        to_state: Target state
        trigger: What triggered the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        pool_id=pool_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("State transition")


def log_execution_outcome(
    logger: FilteringBoundLogger,
    pool_id: str,
    trigger: str,
    status: str,
    message: Optional[str] = None,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log the outcome of one settlement execution.

    Successful and skipped executions log at info level, failures at
    warning level so that scheduled failures stay visible in operations.
    """
    bound_logger = logger.bind(
        pool_id=pool_id,
        trigger=trigger,
        status=status,
    )

    if message:
        bound_logger = bound_logger.bind(detail=message)
    if context:
        bound_logger = bound_logger.bind(context=context)

    if status in ("failed", "rejected"):
        bound_logger.warning("Execution outcome")
    else:
        bound_logger.info("Execution outcome")
