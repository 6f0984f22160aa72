"""Tests for configuration loading."""

import pytest
from pathlib import Path

from mnemo.config import load_config

ENV_KEYS = [
    "MNEMO_DATA_LAKE",
    "DATA_LAKE_PATH",
    "MNEMO_PORT",
    "PORT",
    "MNEMO_HOST",
    "MNEMO_KEY_PATH",
    "MNEMO_ENCRYPT",
    "MNEMO_LOG_LEVEL",
    "MNEMO_MAINTENANCE_HOUR",
    "MNEMO_RATE_LIMIT",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.toml")
        assert config.server.port == 10000
        assert config.server.host == "127.0.0.1"
        assert config.limits.max_content_length == 10000
        assert config.limits.max_query_results == 100
        assert config.maintenance.cleanup_days == 90
        assert config.maintenance.compress_length == 200
        assert config.encryption.enabled is False
        assert config.data_lake.name == "data-lake"

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("MNEMO_DATA_LAKE", str(tmp_path / "lake"))
        monkeypatch.setenv("MNEMO_PORT", "9000")
        monkeypatch.setenv("MNEMO_ENCRYPT", "true")
        monkeypatch.setenv("MNEMO_MAINTENANCE_HOUR", "5")

        config = load_config()
        assert config.data_lake == tmp_path / "lake"
        assert config.server.port == 9000
        assert config.encryption.enabled is True
        assert config.scheduler.maintenance_cron == "0 5 * * *"

    def test_legacy_env_names(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("DATA_LAKE_PATH", str(tmp_path / "legacy"))
        monkeypatch.setenv("PORT", "8123")

        config = load_config()
        assert config.data_lake == tmp_path / "legacy"
        assert config.server.port == 8123

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "mnemo.toml"
        toml_path.write_text("""
data_lake = "/srv/mnemo"

[server]
port = 8080
rate_limit = 0

[maintenance]
cleanup_days = 30
compress_length = 500

[encryption]
enabled = true
""")
        config = load_config(toml_path)
        assert config.data_lake == Path("/srv/mnemo")
        assert config.server.port == 8080
        assert config.server.rate_limit == 0
        assert config.maintenance.cleanup_days == 30
        assert config.maintenance.compress_length == 500
        assert config.encryption.enabled is True

    def test_cwd_toml_discovered(self, tmp_path: Path):
        (tmp_path / "mnemo.toml").write_text("[server]\nport = 7777\n")
        assert load_config().server.port == 7777

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("MNEMO_PORT", "9100")

        toml_path = tmp_path / "mnemo.toml"
        toml_path.write_text("""
[server]
port = 8080
""")
        config = load_config(toml_path)
        assert config.server.port == 9100  # env wins
