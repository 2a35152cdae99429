import pytest
from pydantic import ValidationError

from task_engine.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.max_queue_size == 1000
    assert settings.default_max_retries == 3
    assert settings.worker_busy_delay == 0.1
    assert settings.worker_idle_delay == 1.0
    assert settings.worker_error_delay == 5.0
    assert settings.cleanup_interval_seconds == 3600
    assert settings.cleanup_older_than_hours == 24


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TASK_ENGINE_MAX_QUEUE_SIZE", "5")
    monkeypatch.setenv("TASK_ENGINE_WORKER_AUTOSTART", "false")

    settings = Settings(_env_file=None)
    assert settings.max_queue_size == 5
    assert settings.worker_autostart is False


def test_rejects_out_of_range_values(monkeypatch):
    monkeypatch.setenv("TASK_ENGINE_DEFAULT_MAX_RETRIES", "11")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
