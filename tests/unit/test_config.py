"""Tests for configuration loading."""

import pytest

import funnelflow.persistence as persistence
from funnelflow.config import load_config
from funnelflow.delivery import InMemoryDelivery, LoggingDelivery, get_delivery
from funnelflow.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository, get_repository


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FUNNELFLOW_CONFIG", "FUNNELFLOW_DATABASE_URL", "DATABASE_URL", "FUNNELFLOW_DELIVERY", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/ignored.db
delivery:
  backend: inmemory
worker:
  batch_size: 25
  poll_interval: 5
log_level: DEBUG
"""
    )
    monkeypatch.setenv("FUNNELFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.delivery.backend == "inmemory"
    assert config.worker.batch_size == 25
    assert config.worker.poll_interval == 5
    assert config.worker.max_processing_seconds == 55
    assert config.log_level == "DEBUG"
    assert config.database_url == "sqlite:///tmp/ignored.db"


def test_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///a.db\nlog_level: INFO\n")
    monkeypatch.setenv("FUNNELFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///b.db")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    config = load_config()
    assert config.database_url == "sqlite:///b.db"
    assert config.log_level == "WARNING"


def test_missing_file_yields_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.database_url is None
    assert config.delivery.backend == "logging"
    assert config.worker.batch_size == 100


def test_get_repository_uses_url(tmp_path, monkeypatch):
    monkeypatch.setenv("FUNNELFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    assert isinstance(get_repository(), InMemoryWorkflowRepository)
    assert get_repository() is get_repository()

    repo = get_repository(f"sqlite://{tmp_path / 'ff.db'}")
    assert isinstance(repo, SQLiteWorkflowRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://nope")


def test_get_delivery_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("delivery:\n  backend: inmemory\n")
    monkeypatch.setenv("FUNNELFLOW_CONFIG", str(config_path))

    assert isinstance(get_delivery(), InMemoryDelivery)
    assert isinstance(get_delivery("logging"), LoggingDelivery)
    with pytest.raises(ValueError):
        get_delivery("carrier-pigeon")
