from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import quote

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5577
# Matches the bridge daemon's out-of-the-box token; override with AEGIS_BRIDGE_TOKEN.
DEFAULT_TOKEN = "supersecret123"


def _int_env(name: str, *, default: int, lo: int, hi: int) -> int:
    try:
        val = int(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


def _float_env(name: str, *, default: float, lo: float, hi: float) -> float:
    try:
        val = float(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


@dataclass
class BridgeConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    token: str = DEFAULT_TOKEN
    max_reconnect_attempts: int = 5
    reconnect_base_ms: int = 1000
    debounce_ms: int = 1000
    context_messages: int = 6
    initial_capture_ms: int = 2000
    channel_capacity: int = 256
    health_timeout: float = 2.0
    model: str | None = None

    @classmethod
    def from_env(cls) -> BridgeConfig:
        host = (os.environ.get("AEGIS_BRIDGE_HOST") or DEFAULT_HOST).strip() or DEFAULT_HOST
        token = os.environ.get("AEGIS_BRIDGE_TOKEN")
        model = (os.environ.get("AEGIS_BRIDGE_MODEL") or "").strip() or None
        return cls(
            host=host,
            port=_int_env("AEGIS_BRIDGE_PORT", default=DEFAULT_PORT, lo=1, hi=65535),
            token=DEFAULT_TOKEN if token is None else token,
            max_reconnect_attempts=_int_env("AEGIS_BRIDGE_MAX_RECONNECT_ATTEMPTS", default=5, lo=0, hi=100),
            reconnect_base_ms=_int_env("AEGIS_BRIDGE_RECONNECT_BASE_MS", default=1000, lo=1, hi=600_000),
            debounce_ms=_int_env("AEGIS_BRIDGE_DEBOUNCE_MS", default=1000, lo=0, hi=60_000),
            context_messages=_int_env("AEGIS_BRIDGE_CONTEXT_MESSAGES", default=6, lo=1, hi=100),
            initial_capture_ms=_int_env("AEGIS_BRIDGE_INITIAL_CAPTURE_MS", default=2000, lo=0, hi=600_000),
            channel_capacity=_int_env("AEGIS_BRIDGE_CHANNEL_CAPACITY", default=256, lo=1, hi=100_000),
            health_timeout=_float_env("AEGIS_BRIDGE_HEALTH_TIMEOUT", default=2.0, lo=0.1, hi=60.0),
            model=model,
        )

    def ws_uri(self) -> str:
        return f"ws://{self.host}:{int(self.port)}/ws?token={quote(self.token, safe='')}"

    def health_url(self) -> str:
        return f"http://{self.host}:{int(self.port)}/health"

    def backoff_ms(self, attempt: int) -> int:
        """Delay before reconnect attempt number `attempt` (1-based): base * 2^(attempt-1)."""
        return int(self.reconnect_base_ms) * (2 ** max(0, int(attempt) - 1))
