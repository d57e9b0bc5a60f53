# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import AppConfig
from constants import DEFAULT_RELAY_SERVER_URL, DEFAULT_STUN_SERVERS


ENV_VARS = (
    "ENV", "RELAY_SERVER_URL", "CAMERA_ID", "STUN_SERVERS", "RECONNECT_ENABLED",
    "RECONNECT_MAX_ATTEMPTS", "RECONNECT_INITIAL_DELAY_MS", "RECONNECT_MAX_DELAY_MS",
    "RECORD_PATH", "STATUS_HOST", "STATUS_PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = AppConfig.load_from_env()

    assert config.relay_server_url == DEFAULT_RELAY_SERVER_URL
    assert config.camera_id == ""
    assert config.stun_servers == DEFAULT_STUN_SERVERS
    assert config.reconnect.max_attempts == 5
    assert config.reconnect.initial_delay_ms == 2000
    assert config.reconnect.max_delay_ms == 30000
    assert config.reconnect.enabled
    assert config.record_path is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_SERVER_URL", "wss://relay.example")
    monkeypatch.setenv("CAMERA_ID", "porch")
    monkeypatch.setenv("STUN_SERVERS", "stun:a:3478, stun:b:3478,")
    monkeypatch.setenv("RECONNECT_ENABLED", "0")
    monkeypatch.setenv("RECONNECT_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("RECORD_PATH", "/tmp/porch.mp4")
    monkeypatch.setenv("STATUS_PORT", "9000")

    config = AppConfig.load_from_env()

    assert config.relay_server_url == "wss://relay.example"
    assert config.camera_id == "porch"
    assert config.stun_servers == ("stun:a:3478", "stun:b:3478")
    assert not config.reconnect.enabled
    assert config.reconnect.max_attempts == 2
    assert config.record_path == "/tmp/porch.mp4"
    assert config.status_port == 9000


def test_non_integer_setting_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECONNECT_MAX_ATTEMPTS", "many")
    with pytest.raises(ValueError):
        AppConfig.load_from_env()
