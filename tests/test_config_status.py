from __future__ import annotations

import pytest

from aegis_bridge.config import DEFAULT_TOKEN, BridgeConfig
from aegis_bridge.connector import ConnectionState
from aegis_bridge.status import CONNECTED_BADGE, DISCONNECTED_BADGE, StatusIndicator


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("AEGIS_BRIDGE_HOST", "AEGIS_BRIDGE_PORT", "AEGIS_BRIDGE_TOKEN", "AEGIS_BRIDGE_MODEL"):
        monkeypatch.delenv(name, raising=False)
    cfg = BridgeConfig.from_env()
    assert cfg.ws_uri() == f"ws://127.0.0.1:5577/ws?token={DEFAULT_TOKEN}"
    assert cfg.health_url() == "http://127.0.0.1:5577/health"
    assert cfg.max_reconnect_attempts == 5
    assert cfg.debounce_ms == 1000
    assert cfg.context_messages == 6
    assert cfg.model is None
    assert [cfg.backoff_ms(n) for n in range(1, 6)] == [1000, 2000, 4000, 8000, 16000]


def test_config_from_env_parses_and_clamps(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AEGIS_BRIDGE_HOST", " localhost ")
    monkeypatch.setenv("AEGIS_BRIDGE_PORT", "99999")
    monkeypatch.setenv("AEGIS_BRIDGE_TOKEN", "a b/c")
    monkeypatch.setenv("AEGIS_BRIDGE_DEBOUNCE_MS", "oops")
    monkeypatch.setenv("AEGIS_BRIDGE_MAX_RECONNECT_ATTEMPTS", "3")
    monkeypatch.setenv("AEGIS_BRIDGE_MODEL", "gpt-4")
    cfg = BridgeConfig.from_env()
    assert cfg.host == "localhost"
    assert cfg.port == 65535
    assert cfg.debounce_ms == 1000
    assert cfg.max_reconnect_attempts == 3
    assert cfg.model == "gpt-4"
    assert cfg.ws_uri().endswith("/ws?token=a%20b%2Fc")


def test_status_indicator_is_two_state() -> None:
    ind = StatusIndicator()
    assert ind.badge is DISCONNECTED_BADGE
    ind.update(ConnectionState.CONNECTING)
    assert ind.connected is False
    ind.update(ConnectionState.CONNECTED)
    assert ind.badge is CONNECTED_BADGE
    assert ind.snapshot() == {"connected": True, "text": "Connected", "badgeText": "✓", "badgeColor": "#4CAF50"}
    ind.update(ConnectionState.DISCONNECTED, exhausted=True)
    assert ind.snapshot()["exhausted"] is True
    assert ind.snapshot()["text"] == "Disconnected"
