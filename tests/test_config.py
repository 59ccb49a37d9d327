"""Unit tests for inkwell.engine.config — PlatformConfig and inkwell.yaml loading."""

import pytest

import inkwell.engine.config as cfg_mod
from inkwell.engine.config import (
    HistoryConfig,
    PlatformConfig,
    RetentionConfig,
    SharingConfig,
    get_environment,
    get_platform_config,
    load_platform_config,
    set_platform_config,
)
from inkwell.engine.errors import InkwellConfigError


class TestPlatformConfig:
    """Test PlatformConfig Pydantic model."""

    def test_defaults(self):
        cfg = PlatformConfig()
        assert cfg.name == "Inkwell"
        assert cfg.environment == "dev"
        assert cfg.database.pool_size == 10
        assert cfg.celery.broker == "redis://localhost:6379/0"
        assert cfg.logging.level == "INFO"
        assert cfg.history.max_versions == 50
        assert cfg.history.retention_days == 90
        assert cfg.retention.sweep_cron == "0 2 * * *"
        assert cfg.retention.sweep_batch_size == 200
        assert cfg.sharing.token_length == 12

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            PlatformConfig(environment="test")

    def test_history_values_restricted(self):
        with pytest.raises(ValueError, match="retention_days"):
            HistoryConfig(retention_days=45)
        with pytest.raises(ValueError, match="debounce_ms"):
            HistoryConfig(debounce_ms=1000)

    def test_cron_needs_five_fields(self):
        with pytest.raises(ValueError, match="5 fields"):
            RetentionConfig(sweep_cron="0 2 * *")

    def test_token_length_bounds(self):
        with pytest.raises(ValueError):
            SharingConfig(token_length=4)


class TestLoadPlatformConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_platform_config(str(tmp_path / "inkwell.yaml"))
        assert cfg == PlatformConfig()

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "inkwell.yaml"
        path.write_text(
            "platform:\n"
            "  name: Notes\n"
            "  environment: staging\n"
            "database:\n"
            "  url: sqlite:///notes.db\n"
            "history:\n"
            "  max_versions: 20\n"
            "retention:\n"
            "  sweep_cron: '30 3 * * *'\n",
            encoding="utf-8",
        )

        cfg = load_platform_config(str(path))

        assert cfg.name == "Notes"
        assert cfg.environment == "staging"
        assert cfg.database.url == "sqlite:///notes.db"
        assert cfg.history.max_versions == 20
        assert cfg.retention.sweep_cron == "30 3 * * *"
        assert get_platform_config() is cfg

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "inkwell.yaml"
        path.write_text("history:\n  max_versions: 11\n", encoding="utf-8")
        with pytest.raises(InkwellConfigError) as exc:
            load_platform_config(str(path))
        assert exc.value.context["validation_errors"]

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "inkwell.yaml"
        path.write_text("database: [unclosed\n", encoding="utf-8")
        with pytest.raises(InkwellConfigError, match="Could not parse"):
            load_platform_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "inkwell.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(InkwellConfigError, match="mapping"):
            load_platform_config(str(path))

    def test_auto_discovers_from_parent(self, tmp_path, monkeypatch):
        (tmp_path / "inkwell.yaml").write_text("environment: prod\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert load_platform_config().environment == "prod"


class TestGlobals:
    def test_set_and_get(self):
        cfg = PlatformConfig(environment="prod")
        set_platform_config(cfg)
        assert get_platform_config() is cfg
        assert get_environment() == "prod"

    def test_lazy_load(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg_mod._platform_config = None
        assert get_platform_config() == PlatformConfig()
