"""Default configuration parameters for the periodic savings engine."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SchedulerParams:
    """Schedule coordinator parameters."""
    poll_interval_seconds: int = 60                  # Loop wake-up period for per-plan timers
    sweep_interval_seconds: int = 3600               # Reconciliation sweep period
    max_workers: int = 4                             # Concurrent settlement executions


@dataclass(frozen=True)
class StoreParams:
    """Plan store parameters."""
    db_path: str = "periodic_savings.db"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class CustodyParams:
    """Key custody parameters. The secret itself only comes from the environment."""
    secret_env_var: str = "SAVINGS_CUSTODY_SECRET"


@dataclass(frozen=True)
class SettlementParams:
    """Settlement relayer parameters."""
    url: str = "http://localhost:8545"
    network: str = "LISK"
    timeout_seconds: int = 60
    api_token_env_var: str = "SAVINGS_SETTLEMENT_TOKEN"


@dataclass(frozen=True)
class LoggingParams:
    """Logging output parameters."""
    level: str = "INFO"
    format_json: bool = False
    include_caller: bool = False


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    scheduler: SchedulerParams
    store: StoreParams
    custody: CustodyParams
    settlement: SettlementParams
    logging: LoggingParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        scheduler=SchedulerParams(),
        store=StoreParams(),
        custody=CustodyParams(),
        settlement=SettlementParams(),
        logging=LoggingParams(),
    )
