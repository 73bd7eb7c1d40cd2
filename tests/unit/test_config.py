"""Tests for configuration loading."""

import pytest

import procflow.persistence as persistence
from procflow.config import load_config
from procflow.notifications import InMemoryNotifier, get_notifier
from procflow.notifications.redis import RedisNotifier
from procflow.persistence import InMemoryRunRepository, SQLiteRunRepository, get_repository


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PROCFLOW_CONFIG",
        "PROCFLOW_DATABASE_URL",
        "DATABASE_URL",
        "PROCFLOW_NOTIFIER",
        "PROCFLOW_EXECUTOR_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
notifications:
  backend: redis
  redis:
    host: testhost
    port: 1234
automation:
  executor_url: http://executor.local/run
  max_auto_steps: 5
"""
    )
    monkeypatch.setenv("PROCFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.notifications.backend == "redis"
    assert config.notifications.redis.host == "testhost"
    assert config.notifications.redis.port == 1234
    assert config.automation.executor_url == "http://executor.local/run"
    assert config.automation.max_auto_steps == 5
    assert config.database_url is None


def test_missing_config_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.notifications.backend == "inmemory"
    assert config.automation.executor_url is None
    assert config.automation.timeout == 30.0


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://fallback.db")
    monkeypatch.setenv("PROCFLOW_EXECUTOR_URL", "http://override")
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.database_url == "sqlite://fallback.db"
    assert config.automation.executor_url == "http://override"

    monkeypatch.setenv("PROCFLOW_DATABASE_URL", "sqlite://preferred.db")
    assert load_config(str(tmp_path / "absent.yaml")).database_url == "sqlite://preferred.db"


def test_get_notifier_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
notifications:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("PROCFLOW_CONFIG", str(config_path))

    notifier = get_notifier()
    assert isinstance(notifier, RedisNotifier)
    assert notifier.host == "confighost"
    assert notifier.port == 6380

    monkeypatch.setenv("PROCFLOW_NOTIFIER", "inmemory")
    assert isinstance(get_notifier(), InMemoryNotifier)

    with pytest.raises(ValueError):
        get_notifier("carrier-pigeon")


def test_get_repository_selects_backend(tmp_path):
    assert isinstance(get_repository(), InMemoryRunRepository)
    # the default instance is reused
    assert get_repository() is get_repository()

    repo = get_repository(f"sqlite://{tmp_path / 'runs.db'}")
    assert isinstance(repo, SQLiteRunRepository)
    repo.close()

    with pytest.raises(ValueError):
        get_repository("mysql://nope")
