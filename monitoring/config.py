"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    # Server settings
    host: str
    port: int
    database_url: str
    log_level: str

    # Live metrics backend
    prometheus_url: str
    prometheus_timeout_seconds: float
    prometheus_retention_days: int
    stats_timezone: str

    # Notifications
    slack_webhook_url: str | None

    # Alert scheduling
    scheduler_enabled: bool
    alert_check_interval_seconds: int
    alert_evaluation_timeout_seconds: float
    alert_cooldown_minutes: int
    alert_history_retention_days: int

    # Aggregate roll-up
    rollup_enabled: bool
    rollup_applications: list[str]
    rollup_metric_types: list[str]
    statistics_retention_days: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        host = os.getenv("HOST", "0.0.0.0")
        port_str = os.getenv("PORT", "8080")
        try:
            port = int(port_str)
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got: {port_str}")

        database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./monitoring.db")
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        prometheus_url = os.getenv("PROMETHEUS_URL", "http://localhost:9090").rstrip("/")
        if not prometheus_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"PROMETHEUS_URL must be an http(s) URL, got: {prometheus_url}"
            )

        retention_days = _env_int("PROMETHEUS_RETENTION_DAYS", 30)
        if retention_days <= 0:
            raise ConfigurationError("PROMETHEUS_RETENTION_DAYS must be positive")

        return cls(
            host=host,
            port=port,
            database_url=database_url,
            log_level=log_level,
            prometheus_url=prometheus_url,
            prometheus_timeout_seconds=_env_float("PROMETHEUS_TIMEOUT_SECONDS", 10.0),
            prometheus_retention_days=retention_days,
            stats_timezone=os.getenv("STATS_TIMEZONE", ""),
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL") or None,
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
            alert_check_interval_seconds=_env_int("ALERT_CHECK_INTERVAL_SECONDS", 60),
            alert_evaluation_timeout_seconds=_env_float(
                "ALERT_EVALUATION_TIMEOUT_SECONDS", 15.0
            ),
            alert_cooldown_minutes=_env_int("ALERT_COOLDOWN_MINUTES", 0),
            alert_history_retention_days=_env_int("ALERT_HISTORY_RETENTION_DAYS", 90),
            rollup_enabled=_env_bool("ROLLUP_ENABLED", True),
            rollup_applications=_env_list("ROLLUP_APPLICATIONS", "eng-study"),
            rollup_metric_types=_env_list(
                "ROLLUP_METRIC_TYPES", "CPU_USAGE,HEAP_USAGE,TPS,ERROR_RATE"
            ),
            statistics_retention_days=_env_int("STATISTICS_RETENTION_DAYS", 365),
        )


config = Config.from_env()
