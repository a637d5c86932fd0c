"""Client for the bridge daemon's `/health` endpoint (status display only)."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .config import BridgeConfig

_LOGGER = logging.getLogger("aegis.bridge.health")

OFFLINE = "Offline"
ERROR = "Error"


@dataclass(frozen=True)
class BridgeHealth:
    status: str
    uptime_ms: int | None = None
    active_connections: int | None = None
    active_tabs: int | None = None
    reachable: bool = False

    @property
    def healthy(self) -> bool:
        return self.reachable and self.status not in (OFFLINE, ERROR)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "uptime": self.uptime_ms,
            "activeConnections": self.active_connections,
            "activeTabs": self.active_tabs,
            "reachable": self.reachable,
        }

    def describe(self) -> str:
        if not self.reachable:
            return "Cannot connect to bridge."
        if not self.healthy:
            return "Bridge is not responding properly."
        uptime_s = round((self.uptime_ms or 0) / 1000)
        return (
            "Bridge is healthy!\n"
            f"Uptime: {uptime_s}s\n"
            f"Active connections: {self.active_connections}\n"
            f"Active tabs: {self.active_tabs}"
        )


def _opt_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_health(payload: Any) -> BridgeHealth:
    if not isinstance(payload, dict):
        return BridgeHealth(status=ERROR, reachable=True)
    return BridgeHealth(
        status=str(payload.get("status") or ERROR),
        uptime_ms=_opt_int(payload.get("uptime")),
        active_connections=_opt_int(payload.get("activeConnections")),
        active_tabs=_opt_int(payload.get("activeTabs")),
        reachable=True,
    )


def probe_health(config: BridgeConfig, *, timeout: float | None = None) -> BridgeHealth:
    """GET /health. Never raises: unreachable -> Offline, bad reply -> Error."""
    req = Request(config.health_url(), headers={"User-Agent": "aegis-bridge/1.0"})
    try:
        with urlopen(req, timeout=timeout if timeout is not None else config.health_timeout) as resp:
            if int(resp.status) != 200:
                return BridgeHealth(status=ERROR, reachable=True)
            body = resp.read(64 * 1024)
    except HTTPError as exc:
        _LOGGER.debug("health probe returned HTTP %s", exc.code)
        return BridgeHealth(status=ERROR, reachable=True)
    except (TimeoutError, URLError, OSError) as exc:
        _LOGGER.debug("health probe failed: %s", exc)
        return BridgeHealth(status=OFFLINE)
    try:
        return parse_health(json.loads(body.decode("utf-8", errors="replace")))
    except ValueError:
        return BridgeHealth(status=ERROR, reachable=True)


def main() -> None:
    health = probe_health(BridgeConfig.from_env())
    sys.stdout.write(json.dumps(health.to_dict(), ensure_ascii=False) + "\n")
    sys.stderr.write(health.describe() + "\n")
    raise SystemExit(0 if health.healthy else 1)
