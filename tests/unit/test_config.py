"""Tests for configuration loading."""

import novaflow.backend as backend_module
from novaflow.backend import SQLiteBackendRepository, get_backend
from novaflow.config import load_config
from novaflow.transports import get_transport
from novaflow.transports.redis import RedisTransport


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("NOVAFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("NOVAFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.workflow.poll_interval == 2.0
    assert config.notifications.scan_limit == 100
    assert config.notifications.display_cap == 99
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
workflow:
  poll_interval: 0.5
notifications:
  scan_limit: 50
"""
    )
    monkeypatch.setenv("NOVAFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.workflow.poll_interval == 0.5
    assert config.notifications.scan_limit == 50


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("NOVAFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("NOVAFLOW_TRANSPORT", raising=False)

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380


def test_database_url_env_selects_sqlite(tmp_path, monkeypatch):
    monkeypatch.setenv("NOVAFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("NOVAFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    monkeypatch.setattr(backend_module, "_backend_instance", None)

    assert isinstance(get_backend(), SQLiteBackendRepository)
