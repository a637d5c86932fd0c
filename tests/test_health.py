from __future__ import annotations

import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from aegis_bridge.config import BridgeConfig
from aegis_bridge.health import ERROR, OFFLINE, parse_health, probe_health


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _serve(status: int, body: bytes) -> HTTPServer:
    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            self.send_response(status if self.path == "/health" else 404)
            self.send_header("Content-Type", "application/json")
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args) -> None:  # type: ignore[no-untyped-def]
            return

    server = HTTPServer(("127.0.0.1", 0), _Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def test_probe_health_parses_payload() -> None:
    payload = {"status": "ok", "uptime": 12_400, "activeConnections": 2, "activeTabs": 3}
    server = _serve(200, json.dumps(payload).encode())
    try:
        health = probe_health(BridgeConfig(port=server.server_address[1]))
    finally:
        server.shutdown()
    assert health.healthy
    assert health.to_dict() == {
        "status": "ok",
        "uptime": 12_400,
        "activeConnections": 2,
        "activeTabs": 3,
        "reachable": True,
    }
    assert "Uptime: 12s" in health.describe()
    assert "Active tabs: 3" in health.describe()


def test_probe_health_offline_when_nothing_listens() -> None:
    health = probe_health(BridgeConfig(port=_free_port()), timeout=0.5)
    assert health.status == OFFLINE
    assert health.reachable is False
    assert health.healthy is False
    assert health.describe() == "Cannot connect to bridge."


def test_probe_health_error_on_bad_status_or_body() -> None:
    server = _serve(503, b"{}")
    try:
        assert probe_health(BridgeConfig(port=server.server_address[1])).status == ERROR
    finally:
        server.shutdown()

    server = _serve(200, b"not json")
    try:
        health = probe_health(BridgeConfig(port=server.server_address[1]))
    finally:
        server.shutdown()
    assert health.status == ERROR
    assert health.reachable is True
    assert health.healthy is False


def test_parse_health_tolerates_missing_fields() -> None:
    health = parse_health({"status": "ok", "uptime": "n/a"})
    assert health.uptime_ms is None
    assert health.active_tabs is None
    assert parse_health([]).status == ERROR
