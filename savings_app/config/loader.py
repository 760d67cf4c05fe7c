"""Configuration loader with 3-tier parameter precedence."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigurationError
from .defaults import (
    CustodyParams,
    DefaultConfig,
    LoggingParams,
    SchedulerParams,
    SettlementParams,
    StoreParams,
    get_default_config,
)
from .validation import ConfigValidator

SETTINGS_FILE = "settings.yaml"

# Environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SAVINGS_DB_PATH": ("store", "db_path"),
    "SAVINGS_SETTLEMENT_URL": ("settlement", "url"),
    "SAVINGS_NETWORK": ("settlement", "network"),
    "SAVINGS_LOG_LEVEL": ("logging", "level"),
}

SECTION_TYPES = {
    "scheduler": SchedulerParams,
    "store": StoreParams,
    "custody": CustodyParams,
    "settlement": SettlementParams,
    "logging": LoggingParams,
}


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_file_config(self) -> dict[str, Any]:
        """Load overrides from settings.yaml, empty when the file is absent."""
        settings_file = self.config_dir / SETTINGS_FILE

        if not settings_file.exists():
            return {}

        with open(settings_file) as f:
            file_config = yaml.safe_load(f) or {}

        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f"{settings_file} must contain a mapping",
                field=SETTINGS_FILE,
                value=type(file_config).__name__,
            )
        return file_config

    def load_env_config(self) -> dict[str, Any]:
        """Collect deployment overrides from the environment."""
        env_config: dict[str, Any] = {}
        for env_var, (section, field_name) in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                env_config.setdefault(section, {})[field_name] = value
        return env_config

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Explicit overrides and environment variables (highest priority)
        2. settings.yaml in the config directory
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_file_config())
        config = self._deep_merge(config, self.load_env_config())

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(self, overrides: Optional[dict[str, Any]] = None) -> DefaultConfig:
        """
        Merge all tiers, validate and build typed settings.

        Raises:
            ConfigurationError: If any merged value fails validation
        """
        config = self.merge_config(overrides)

        errors = ConfigValidator.validate_config(config)
        if errors:
            error_msgs = [f"{err.field}: {err.message} (got: {err.value})" for err in errors]
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(error_msgs)}",
                field=errors[0].field,
                value=errors[0].value,
                errors=errors,
            )

        return build_config(config)

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name, _field in obj.__dataclass_fields__.items():
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def build_config(config: dict[str, Any]) -> DefaultConfig:
    """Build typed settings from a merged configuration dictionary."""
    sections = {}
    for section, params_type in SECTION_TYPES.items():
        values = config.get(section, {}) or {}
        try:
            sections[section] = params_type(**values)
        except TypeError as e:
            raise ConfigurationError(
                f"Unknown setting in section '{section}': {e}",
                field=section,
                value=values,
            ) from e
    return DefaultConfig(**sections)
