from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from .connector import ConnectionState, Connector


@dataclass(frozen=True)
class Badge:
    text: str
    color: str
    label: str


CONNECTED_BADGE = Badge(text="✓", color="#4CAF50", label="Connected")
DISCONNECTED_BADGE = Badge(text="✗", color="#F44336", label="Disconnected")


class StatusIndicator:
    """Two-state connected/disconnected view of the connector, safe to poll from any thread.

    CONNECTING reads as disconnected: only a completed handshake turns it green.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._badge = DISCONNECTED_BADGE
        self._exhausted = False

    def attach(self, connector: Connector) -> None:
        connector.add_state_listener(lambda state: self.update(state, exhausted=connector.exhausted))
        self.update(connector.state, exhausted=connector.exhausted)

    def update(self, state: ConnectionState, *, exhausted: bool = False) -> None:
        badge = CONNECTED_BADGE if state is ConnectionState.CONNECTED else DISCONNECTED_BADGE
        with self._lock:
            self._badge = badge
            self._exhausted = bool(exhausted)

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._badge is CONNECTED_BADGE

    @property
    def badge(self) -> Badge:
        with self._lock:
            return self._badge

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            badge = self._badge
            exhausted = self._exhausted
        return {
            "connected": badge is CONNECTED_BADGE,
            "text": badge.label,
            "badgeText": badge.text,
            "badgeColor": badge.color,
            **({"exhausted": True} if exhausted else {}),
        }
