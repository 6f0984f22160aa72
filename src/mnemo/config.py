"""Configuration loading from environment variables and mnemo.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".mnemo"
_DEFAULT_DATA_LAKE = _DEFAULT_HOME / "data-lake"
_CONFIG_FILENAME = "mnemo.toml"


@dataclass
class LimitsConfig:
    """Hard bounds applied to every request."""

    max_content_length: int = 10000
    max_identifier_length: int = 64
    max_query_results: int = 100
    max_timeline_days: int = 365
    max_keywords: int = 10


@dataclass
class ServerConfig:
    """HTTP API configuration."""

    host: str = "127.0.0.1"
    port: int = 10000
    rate_limit: int = 120  # requests per window, 0 disables
    rate_window: int = 60  # seconds
    max_body_bytes: int = 1024 * 1024


@dataclass
class SchedulerConfig:
    """Scheduler configuration."""

    maintenance_cron: str = "0 3 * * *"
    check_interval: int = 300


@dataclass
class MaintenanceConfig:
    """Thresholds used by the maintenance sweeper."""

    cleanup_days: int = 90
    cleanup_max_importance: int = 3
    compress_days: int = 30
    compress_length: int = 200
    compress_batch: int = 100


@dataclass
class EncryptionConfig:
    """Searchable encryption configuration."""

    enabled: bool = False
    key_path: Path = _DEFAULT_HOME / "mnemo.key"


@dataclass
class MnemoConfig:
    """Top-level mnemo configuration."""

    limits: LimitsConfig = field(default_factory=LimitsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)
    data_lake: Path = _DEFAULT_DATA_LAKE
    pid_file: Path = _DEFAULT_HOME / "mnemo.pid"
    log_level: str = "INFO"


def _env(*names: str, default=None):
    """Return the first set environment variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value is not None:
            return value
    return default


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: Path | None = None) -> MnemoConfig:
    """Load configuration from environment variables and optional mnemo.toml.

    Priority: environment variables > mnemo.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_HOME / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    limits_data = file_data.get("limits", {})
    server_data = file_data.get("server", {})
    scheduler_data = file_data.get("scheduler", {})
    maintenance_data = file_data.get("maintenance", {})
    encryption_data = file_data.get("encryption", {})

    maintenance_cron = scheduler_data.get("maintenance_cron", "0 3 * * *")
    hour = os.getenv("MNEMO_MAINTENANCE_HOUR")
    if hour is not None:
        maintenance_cron = f"0 {int(hour)} * * *"

    config = MnemoConfig(
        limits=LimitsConfig(
            max_content_length=int(limits_data.get("max_content_length", 10000)),
            max_identifier_length=int(limits_data.get("max_identifier_length", 64)),
            max_query_results=int(limits_data.get("max_query_results", 100)),
            max_timeline_days=int(limits_data.get("max_timeline_days", 365)),
            max_keywords=int(limits_data.get("max_keywords", 10)),
        ),
        server=ServerConfig(
            host=_env("MNEMO_HOST", default=server_data.get("host", "127.0.0.1")),
            port=int(_env("MNEMO_PORT", "PORT", default=server_data.get("port", 10000))),
            rate_limit=int(_env("MNEMO_RATE_LIMIT", default=server_data.get("rate_limit", 120))),
            rate_window=int(server_data.get("rate_window", 60)),
            max_body_bytes=int(server_data.get("max_body_bytes", 1024 * 1024)),
        ),
        scheduler=SchedulerConfig(
            maintenance_cron=maintenance_cron,
            check_interval=int(scheduler_data.get("check_interval", 300)),
        ),
        maintenance=MaintenanceConfig(
            cleanup_days=int(maintenance_data.get("cleanup_days", 90)),
            cleanup_max_importance=int(maintenance_data.get("cleanup_max_importance", 3)),
            compress_days=int(maintenance_data.get("compress_days", 30)),
            compress_length=int(maintenance_data.get("compress_length", 200)),
            compress_batch=int(maintenance_data.get("compress_batch", 100)),
        ),
        encryption=EncryptionConfig(
            enabled=_as_bool(_env("MNEMO_ENCRYPT", default=encryption_data.get("enabled", False))),
            key_path=Path(
                _env(
                    "MNEMO_KEY_PATH",
                    default=encryption_data.get("key_path", str(_DEFAULT_HOME / "mnemo.key")),
                )
            ).expanduser(),
        ),
        data_lake=Path(
            _env(
                "MNEMO_DATA_LAKE",
                "DATA_LAKE_PATH",
                default=file_data.get("data_lake", str(_DEFAULT_DATA_LAKE)),
            )
        ).expanduser(),
        pid_file=Path(file_data.get("pid_file", str(_DEFAULT_HOME / "mnemo.pid"))).expanduser(),
        log_level=_env("MNEMO_LOG_LEVEL", default=file_data.get("log_level", "INFO")),
    )
    return config
