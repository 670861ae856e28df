"""
Unit tests for configuration
"""

from importlib import reload

import pytest

import config.config as cfg


@pytest.fixture
def reload_config(monkeypatch):
    """Reload config.config after env changes; restore the module afterwards."""
    # .env must not override the variables under test
    monkeypatch.setattr("dotenv.load_dotenv", lambda *args, **kwargs: False)

    def _reload():
        return reload(cfg)

    yield _reload
    monkeypatch.undo()
    reload(cfg)


def test_scheduler_flag_parsing(monkeypatch, reload_config):
    monkeypatch.setenv("ANALYTICS_SCHEDULER_ENABLED", "true")
    monkeypatch.setenv("ANALYTICS_SCHEDULER_HOUR", "5")
    module = reload_config()
    assert module.ANALYTICS_SCHEDULER_ENABLED is True
    assert module.ANALYTICS_SCHEDULER_HOUR == 5

    monkeypatch.setenv("ANALYTICS_SCHEDULER_ENABLED", "no")
    module = reload_config()
    assert module.ANALYTICS_SCHEDULER_ENABLED is False


def test_defaults(monkeypatch, reload_config):
    for name in ("API_RATE_LIMIT", "DEFAULT_MIN_SAMPLE_SIZE", "ANALYTICS_SCHEDULER_ENABLED", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
    module = reload_config()

    assert module.API_RATE_LIMIT == "120/minute"
    assert module.DEFAULT_MIN_SAMPLE_SIZE == 10
    assert module.ANALYTICS_SCHEDULER_ENABLED is False
    assert module.REDIS_URL == ""


def test_allowed_origins_parsing(monkeypatch, reload_config):
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,,")
    module = reload_config()
    assert module.ALLOWED_ORIGINS == ["https://a.example", "https://b.example"]


def test_validate_config(monkeypatch):
    monkeypatch.setattr(cfg, "ANALYTICS_API_KEY", "")
    monkeypatch.setattr(cfg, "DEFAULT_MIN_SAMPLE_SIZE", 0)
    errors = cfg.validate_config()
    assert "ANALYTICS_API_KEY is required" in errors
    assert "DEFAULT_MIN_SAMPLE_SIZE must be >= 1" in errors

    monkeypatch.setattr(cfg, "ANALYTICS_API_KEY", "secret")
    monkeypatch.setattr(cfg, "DEFAULT_MIN_SAMPLE_SIZE", 10)
    assert cfg.validate_config() == []
