"""Configuration validation utilities."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import ConfigurationError
from ..state.models import LockType, PlanConfig, SavingInterval

PLAN_REQUIRED_FIELDS = (
    "owner_ref",
    "token_ref",
    "initial_amount",
    "periodic_amount",
    "reason",
    "lock_type",
    "duration",
    "interval",
)


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _to_decimal(value: Any) -> Decimal:
    # bool is an int subclass; never accept it as an amount
    if isinstance(value, bool):
        raise InvalidOperation(value)
    return Decimal(str(value))


class ConfigValidator:
    """Validates engine settings and plan configurations."""

    @staticmethod
    def validate_scheduler_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate scheduler parameters."""
        errors = []

        for name in ("poll_interval_seconds", "sweep_interval_seconds", "max_workers"):
            if name in params:
                value = params[name]
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a positive integer",
                        value=value
                    ))

        poll = params.get("poll_interval_seconds")
        sweep = params.get("sweep_interval_seconds")
        if (isinstance(poll, int) and isinstance(sweep, int)
                and 0 < sweep < poll):
            errors.append(ValidationError(
                field="sweep_interval_seconds",
                message="Must not be shorter than poll_interval_seconds",
                value=sweep
            ))

        return errors

    @staticmethod
    def validate_store_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate plan store parameters."""
        errors = []

        if "db_path" in params:
            value = params["db_path"]
            if not isinstance(value, str) or not value:
                errors.append(ValidationError(
                    field="db_path",
                    message="Must be a non-empty path",
                    value=value
                ))

        if "timeout_seconds" in params:
            value = params["timeout_seconds"]
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(ValidationError(
                    field="timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_settlement_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate settlement relayer parameters."""
        errors = []

        if "url" in params:
            value = params["url"]
            if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                errors.append(ValidationError(
                    field="url",
                    message="Must be an http(s) URL",
                    value=value
                ))

        if "timeout_seconds" in params:
            value = params["timeout_seconds"]
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(ValidationError(
                    field="timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "network" in params:
            value = params["network"]
            if not isinstance(value, str) or not value:
                errors.append(ValidationError(
                    field="network",
                    message="Must be a non-empty string",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "scheduler" in config:
            errors.extend(ConfigValidator.validate_scheduler_params(config["scheduler"]))
        if "store" in config:
            errors.extend(ConfigValidator.validate_store_params(config["store"]))
        if "settlement" in config:
            errors.extend(ConfigValidator.validate_settlement_params(config["settlement"]))

        return errors

    @staticmethod
    def validate_plan_config(raw: dict[str, Any]) -> list[ValidationError]:
        """
        Validate owner-supplied plan settings.

        Rules: every required field present, interval one of DAILY/WEEKLY/
        MONTHLY, lock type 0, 1 or 2, positive amounts and a positive
        duration in seconds.
        """
        errors = []

        for name in PLAN_REQUIRED_FIELDS:
            value = raw.get(name)
            if value is None or value == "":
                errors.append(ValidationError(
                    field=name,
                    message="Field is required",
                    value=value
                ))

        interval = raw.get("interval")
        if interval is not None:
            allowed = [i.value for i in SavingInterval]
            if getattr(interval, "value", interval) not in allowed:
                errors.append(ValidationError(
                    field="interval",
                    message=f"Must be one of {', '.join(allowed)}",
                    value=interval
                ))

        lock_type = raw.get("lock_type")
        if lock_type is not None:
            allowed_locks = [lt.value for lt in LockType]
            if isinstance(lock_type, bool) or getattr(lock_type, "value", lock_type) not in allowed_locks:
                errors.append(ValidationError(
                    field="lock_type",
                    message="Invalid lock type. Must be 0, 1, or 2",
                    value=lock_type
                ))

        for name in ("initial_amount", "periodic_amount"):
            value = raw.get(name)
            if value is None or value == "":
                continue
            try:
                amount = _to_decimal(value)
            except (InvalidOperation, ValueError):
                errors.append(ValidationError(
                    field=name,
                    message="Must be a decimal number",
                    value=value
                ))
                continue
            if not amount.is_finite() or amount <= 0:
                errors.append(ValidationError(
                    field=name,
                    message="Must be a positive amount",
                    value=value
                ))

        duration = raw.get("duration")
        if duration is not None and (
            not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0
        ):
            errors.append(ValidationError(
                field="duration",
                message="Must be a positive number of seconds",
                value=duration
            ))

        return errors

    @staticmethod
    def validate_amount(value: Any, field: str = "periodic_amount") -> Decimal:
        """Parse a single deposit amount or raise ConfigurationError."""
        try:
            amount = _to_decimal(value)
        except (InvalidOperation, ValueError) as e:
            raise ConfigurationError(
                f"{field} must be a decimal number", field=field, value=value
            ) from e
        if not amount.is_finite() or amount <= 0:
            raise ConfigurationError(
                f"{field} must be a positive amount", field=field, value=value
            )
        return amount

    @staticmethod
    def parse_plan_config(raw: dict[str, Any]) -> PlanConfig:
        """
        Validate and build a PlanConfig.

        Raises:
            ConfigurationError: With every ValidationError attached
        """
        errors = ConfigValidator.validate_plan_config(raw)
        if errors:
            first = errors[0]
            raise ConfigurationError(
                f"Invalid plan configuration: {first.field}: {first.message}",
                field=first.field,
                value=first.value,
                errors=errors,
            )

        return PlanConfig(
            owner_ref=str(raw["owner_ref"]),
            token_ref=str(raw["token_ref"]),
            initial_amount=_to_decimal(raw["initial_amount"]),
            periodic_amount=_to_decimal(raw["periodic_amount"]),
            reason=str(raw["reason"]),
            lock_type=LockType(getattr(raw["lock_type"], "value", raw["lock_type"])),
            duration=raw["duration"],
            interval=SavingInterval(getattr(raw["interval"], "value", raw["interval"])),
            network=str(raw.get("network") or "LISK"),
        )
