"""Unit tests for configuration management."""

import pytest
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Dict, Any
from unittest.mock import patch

from savings_app.config.defaults import get_default_config
from savings_app.config.loader import ConfigLoader, build_config
from savings_app.config.validation import ConfigValidator
from savings_app.errors import ConfigurationError
from savings_app.state.models import LockType, SavingInterval


class TestDefaultConfig:
    """Test suite for default configuration."""

    def test_default_config_creation(self) -> None:
        """Test that default configuration can be created."""
        config = get_default_config()
        assert config.scheduler.poll_interval_seconds == 60
        assert config.scheduler.sweep_interval_seconds == 3600
        assert config.store.db_path == "periodic_savings.db"
        assert config.settlement.network == "LISK"
        assert config.custody.secret_env_var == "SAVINGS_CUSTODY_SECRET"


class TestConfigLoader:
    """Test suite for configuration loader."""

    def setup_method(self) -> None:
        """Set up a temporary config directory."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_dir = Path(self.temp_dir.name)
        self.loader = ConfigLoader.create(self.config_dir)

    def teardown_method(self) -> None:
        self.temp_dir.cleanup()

    def write_settings(self, text: str) -> None:
        (self.config_dir / "settings.yaml").write_text(text)

    def test_config_loader_creation(self) -> None:
        """Test that ConfigLoader finds the repository config directory by default."""
        loader = ConfigLoader.create()
        assert isinstance(loader.config_dir, Path)
        assert loader.config_dir.name == "config"

    def test_defaults_only(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = self.loader.load()

        assert settings == get_default_config()

    def test_file_overrides_defaults(self) -> None:
        self.write_settings("scheduler:\n  max_workers: 8\nsettlement:\n  network: BASE\n")

        with patch.dict("os.environ", {}, clear=True):
            settings = self.loader.load()

        assert settings.scheduler.max_workers == 8
        # Untouched defaults remain
        assert settings.scheduler.poll_interval_seconds == 60
        assert settings.settlement.network == "BASE"
        assert settings.settlement.url == "http://localhost:8545"

    def test_environment_overrides_file(self) -> None:
        self.write_settings("store:\n  db_path: from-file.db\n")

        with patch.dict("os.environ", {"SAVINGS_DB_PATH": "from-env.db",
                                       "SAVINGS_SETTLEMENT_URL": "https://relayer.example"}, clear=True):
            settings = self.loader.load()

        assert settings.store.db_path == "from-env.db"
        assert settings.settlement.url == "https://relayer.example"

    def test_explicit_overrides_win(self) -> None:
        with patch.dict("os.environ", {"SAVINGS_DB_PATH": "from-env.db"}, clear=True):
            settings = self.loader.load({"store": {"db_path": "explicit.db"}})

        assert settings.store.db_path == "explicit.db"

    def test_empty_file(self) -> None:
        self.write_settings("")

        with patch.dict("os.environ", {}, clear=True):
            assert self.loader.load_file_config() == {}

    def test_non_mapping_file_rejected(self) -> None:
        self.write_settings("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            self.loader.load_file_config()

    def test_invalid_values_rejected(self) -> None:
        self.write_settings("scheduler:\n  max_workers: 0\nsettlement:\n  url: ftp://nowhere\n")

        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                self.loader.load()

        fields = {error.field for error in exc_info.value.errors}
        assert fields == {"max_workers", "url"}

    def test_unknown_setting_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            build_config({"scheduler": {"cron": "0 * * * *"}})

        assert exc_info.value.field == "scheduler"


class TestConfigValidator:
    """Test suite for settings validation."""

    def test_valid_scheduler_params(self) -> None:
        assert ConfigValidator.validate_scheduler_params({
            "poll_interval_seconds": 30, "sweep_interval_seconds": 600, "max_workers": 2
        }) == []

    def test_sweep_shorter_than_poll(self) -> None:
        errors = ConfigValidator.validate_scheduler_params({
            "poll_interval_seconds": 120, "sweep_interval_seconds": 60
        })

        assert [e.field for e in errors] == ["sweep_interval_seconds"]

    def test_store_params(self) -> None:
        errors = ConfigValidator.validate_store_params({"db_path": "", "timeout_seconds": -1})
        assert {e.field for e in errors} == {"db_path", "timeout_seconds"}

    def test_settlement_params(self) -> None:
        errors = ConfigValidator.validate_settlement_params({"network": "", "timeout_seconds": 0})
        assert {e.field for e in errors} == {"network", "timeout_seconds"}


class TestPlanConfigValidation:
    """Test suite for owner-supplied plan settings."""

    def valid_settings(self) -> Dict[str, Any]:
        return {
            "owner_ref": "owner-1",
            "token_ref": "0xtoken",
            "initial_amount": "100",
            "periodic_amount": 10,
            "reason": "Trip",
            "lock_type": 2,
            "duration": 3600,
            "interval": "MONTHLY",
        }

    def test_parse_valid_settings(self) -> None:
        config = ConfigValidator.parse_plan_config(self.valid_settings())

        assert config.initial_amount == Decimal("100")
        assert config.periodic_amount == Decimal("10")
        assert config.lock_type == LockType.HARD
        assert config.interval == SavingInterval.MONTHLY
        assert config.network == "LISK"

    def test_enum_members_accepted(self) -> None:
        settings = dict(self.valid_settings(), interval=SavingInterval.DAILY, lock_type=LockType.SOFT)

        config = ConfigValidator.parse_plan_config(settings)

        assert config.interval == SavingInterval.DAILY
        assert config.lock_type == LockType.SOFT

    def test_float_amount_keeps_written_value(self) -> None:
        config = ConfigValidator.parse_plan_config(dict(self.valid_settings(), periodic_amount=0.1))

        assert config.periodic_amount == Decimal("0.1")

    @pytest.mark.parametrize("field,value,message", [
        ("interval", "YEARLY", "Must be one of DAILY, WEEKLY, MONTHLY"),
        ("lock_type", 5, "Invalid lock type. Must be 0, 1, or 2"),
        ("lock_type", True, "Invalid lock type. Must be 0, 1, or 2"),
        ("periodic_amount", "0", "Must be a positive amount"),
        ("initial_amount", "NaN", "Must be a positive amount"),
        ("periodic_amount", "1e", "Must be a decimal number"),
        ("duration", 1.5, "Must be a positive number of seconds"),
        ("owner_ref", None, "Field is required"),
    ])
    def test_invalid_field(self, field, value, message) -> None:
        errors = ConfigValidator.validate_plan_config(dict(self.valid_settings(), **{field: value}))

        assert [(e.field, e.message) for e in errors] == [(field, message)]

    def test_parse_raises_with_all_errors(self) -> None:
        settings = dict(self.valid_settings(), interval="HOURLY", duration=-1)

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigValidator.parse_plan_config(settings)

        assert len(exc_info.value.errors) == 2
        assert exc_info.value.field == "interval"

    def test_validate_amount(self) -> None:
        assert ConfigValidator.validate_amount("2.50") == Decimal("2.50")

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigValidator.validate_amount("-2", field="periodic_amount")
        assert exc_info.value.field == "periodic_amount"
