# suites/config.py
"""
Configuration for the check suites.

Target URLs, credentials and retry/timeout settings come from environment
variables, optionally seeded from a ``.env`` file. Two sets of URL defaults
exist: in-cluster service names for the startup check, localhost ports for
the QA suites run from an operator's machine.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Mapping

from dotenv import load_dotenv

from observability.logging import config_logger

IN_CLUSTER_URLS = {
    "prometheus_url": "http://prometheus:9090",
    "grafana_url": "http://grafana:3000",
    "loki_url": "http://loki:3100",
    "tempo_url": "http://tempo:3200",
    "alertmanager_url": "http://alertmanager:9093",
    "promtail_url": "http://promtail:9080",
    "example_api_url": "http://example_api:9091",
}

LOCAL_URLS = {
    "prometheus_url": "http://localhost:9090",
    "grafana_url": "http://localhost:3000",
    "loki_url": "http://localhost:3100",
    "tempo_url": "http://localhost:3200",
    "alertmanager_url": "http://localhost:9093",
    "promtail_url": "http://localhost:9080",
    "example_api_url": "http://localhost:9091",
}

DEFAULT_GRAFANA_USER = "admin"
DEFAULT_GRAFANA_PASSWORD = "yourpassword123"


class ConfigurationError(Exception):
    """Raised when required settings are missing or malformed."""
    pass


@dataclass
class StackConfig:
    """Settings shared by every suite."""

    # Core services
    prometheus_url: str = LOCAL_URLS["prometheus_url"]
    grafana_url: str = LOCAL_URLS["grafana_url"]
    loki_url: str = LOCAL_URLS["loki_url"]
    tempo_url: str = LOCAL_URLS["tempo_url"]
    alertmanager_url: str = LOCAL_URLS["alertmanager_url"]
    promtail_url: str = LOCAL_URLS["promtail_url"]
    example_api_url: str = LOCAL_URLS["example_api_url"]

    # Optional services (only checked when configured)
    postgres_exporter_url: str = ""
    slack_webhook_url: str = ""
    pagerduty_service_key: str = ""

    grafana_user: str = DEFAULT_GRAFANA_USER
    grafana_password: str = DEFAULT_GRAFANA_PASSWORD

    # Timing
    max_retries: int = 30
    retry_interval: float = 2.0
    timeout: float = 5.0
    test_timeout: float = 30.0
    log_ingest_wait: float = 10.0

    # Restore validation
    test_db_url: str = ""

    bundle_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self):
        # CLI overrides reach here without passing through _as_int/_as_float
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        for name in ("retry_interval", "test_timeout", "log_ingest_wait"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must not be negative, got {value}")

    @property
    def grafana_auth(self):
        return (self.grafana_user, self.grafana_password)

    def bundle_path(self, *parts: str) -> Path:
        return Path(self.bundle_dir).joinpath(*parts)

    @classmethod
    def from_environment(cls, in_cluster: bool = False, env_file: Optional[str] = None,
                         environ: Optional[Mapping[str, str]] = None) -> "StackConfig":
        """Create configuration from environment variables and an optional .env file."""
        if environ is None:
            load_env_file(env_file)
            environ = os.environ

        defaults = IN_CLUSTER_URLS if in_cluster else LOCAL_URLS

        def url(name: str) -> str:
            return environ.get(name.upper()) or defaults[name]

        return cls(
            prometheus_url=url("prometheus_url"),
            grafana_url=url("grafana_url"),
            loki_url=url("loki_url"),
            tempo_url=url("tempo_url"),
            alertmanager_url=url("alertmanager_url"),
            promtail_url=url("promtail_url"),
            example_api_url=url("example_api_url"),
            postgres_exporter_url=environ.get("POSTGRES_EXPORTER_URL", ""),
            slack_webhook_url=environ.get("SLACK_WEBHOOK_URL", ""),
            pagerduty_service_key=environ.get("PAGERDUTY_SERVICE_KEY", ""),
            grafana_user=environ.get("GRAFANA_USER", DEFAULT_GRAFANA_USER),
            grafana_password=environ.get("GRAFANA_PASSWORD", DEFAULT_GRAFANA_PASSWORD),
            max_retries=_as_int(environ, "MAX_RETRIES", 30),
            retry_interval=_as_float(environ, "RETRY_INTERVAL", 2.0),
            timeout=_as_float(environ, "TIMEOUT", 5.0),
            test_timeout=_as_float(environ, "TEST_TIMEOUT", 30.0),
            log_ingest_wait=_as_float(environ, "LOG_INGEST_WAIT", 10.0),
            test_db_url=environ.get("TEST_DB_URL", ""),
            bundle_dir=Path(environ.get("BUNDLE_DIR") or Path.cwd()),
        )

    @classmethod
    def from_dict(cls, config_dict: dict) -> "StackConfig":
        """Create configuration from a dictionary; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        values = dict(config_dict)
        if "bundle_dir" in values:
            values["bundle_dir"] = Path(values["bundle_dir"])
        return cls(**values)

    def with_overrides(self, **overrides) -> "StackConfig":
        """Return a copy with the non-None overrides applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return StackConfig.from_dict(values)


def load_env_file(env_file: Optional[str] = None) -> Optional[Path]:
    """Load a .env file without overriding variables already set."""
    path = Path(env_file) if env_file else Path.cwd() / ".env"
    if not path.is_file():
        if env_file:
            raise ConfigurationError(f"Environment file not found: {env_file}")
        config_logger.debug(".env file not found, using defaults", path=str(path))
        return None

    load_dotenv(path, override=False)
    config_logger.info("Loaded environment file", path=str(path))
    return path


def _as_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {value}")
    return value


def _as_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value
