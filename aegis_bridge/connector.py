"""Connector: owns the bridge socket, reconnect policy and page routing.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED -> (backoff) -> CONNECTING ...

Reconnect delays are base * 2^(attempt-1) with no jitter and no cap other
than the attempt budget. Once the budget is spent the connector stays
DISCONNECTED until `reconnect()` is called. A successful open zeroes the
attempt counter and re-registers every live page.

Every method here runs on the connector's event context (the scheduler's
loop). Pages reach it only through the message bus.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from functools import partial
from typing import Any

from . import envelope as env
from .channel import CAPTURE, REGISTER_TAB, HostMessage, MessageBus
from .config import BridgeConfig
from .errors import (
    ConnectFailure,
    DecodingError,
    EncodingError,
    ReconnectBudgetExhausted,
    RouteNotFound,
    SendWhileDisconnected,
)
from .tab_registry import TabRegistry
from .timers import Scheduler, TimerHandle
from .transport import Transport

_LOGGER = logging.getLogger("aegis.bridge.connector")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


StateListener = Callable[[ConnectionState], None]


class Connector:
    def __init__(
        self,
        config: BridgeConfig,
        *,
        transport: Transport,
        scheduler: Scheduler,
        bus: MessageBus,
        registry: TabRegistry | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.scheduler = scheduler
        self.bus = bus
        self.registry = registry or TabRegistry(clock=scheduler.now_ms)

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._exhausted = False
        self._running = False
        # Bumped on every connection attempt; callbacks from older attempts are ignored.
        self._generation = 0
        self._reconnect_timer: TimerHandle | None = None
        self._listeners: list[StateListener] = []

        # Last known (url, title) per live page instance, tracked or not.
        self._live: dict[str, tuple[str, str]] = {}

        self.sent = 0
        self.received = 0
        self.dropped = 0

        bus.on_page_message(self._on_page_message)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._attempts = 0
        self._exhausted = False
        self._connect()

    def stop(self) -> None:
        self._running = False
        self._cancel_reconnect()
        self._generation += 1
        self.transport.close()
        self.registry.mark_all(connected=False)
        self._set_state(ConnectionState.DISCONNECTED)

    def reconnect(self) -> None:
        """External trigger: start over with a fresh attempt budget."""
        self._cancel_reconnect()
        self._generation += 1
        self.transport.close()
        self._running = True
        self._attempts = 0
        self._exhausted = False
        self._connect()

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "connected": self._state is ConnectionState.CONNECTED,
            "attempts": self._attempts,
            "exhausted": self._exhausted,
            "reconnectPending": self._reconnect_timer is not None,
            "tabs": [e.to_dict() for e in self.registry.entries()],
            "sent": self.sent,
            "received": self.received,
            "dropped": self.dropped,
        }

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        _LOGGER.info("bridge %s", state.value)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("state listener failed")

    def _cancel_reconnect(self) -> None:
        timer = self._reconnect_timer
        self._reconnect_timer = None
        if timer is not None:
            timer.cancel()

    def _connect(self) -> None:
        self._reconnect_timer = None
        if not self._running:
            return
        self._generation += 1
        gen = self._generation
        self._set_state(ConnectionState.CONNECTING)
        _LOGGER.info("connecting to bridge %s:%s", self.config.host, self.config.port)
        try:
            self.transport.open(
                self.config.ws_uri(),
                on_open=partial(self._on_open, gen),
                on_message=partial(self._on_frame, gen),
                on_close=partial(self._on_close, gen),
            )
        except Exception as exc:  # noqa: BLE001
            self._on_close(gen, ConnectFailure(str(exc) or type(exc).__name__))

    def _on_open(self, gen: int) -> None:
        if gen != self._generation:
            return
        self._attempts = 0
        self._exhausted = False
        self._set_state(ConnectionState.CONNECTED)
        for tab_id, (url, title) in list(self._live.items()):
            self.registry.upsert(tab_id, url, title)

    def _on_close(self, gen: int, error: Exception | None = None) -> None:
        if gen != self._generation:
            return
        # Close and error can both be reported for one attempt; handle only the first.
        self._generation += 1
        if error is not None:
            _LOGGER.warning("bridge connection failed: %s", error)
        self.registry.mark_all(connected=False)
        if self._running and self._attempts >= self.config.max_reconnect_attempts:
            # Set before the state change so listeners observe it.
            self._exhausted = True
        self._set_state(ConnectionState.DISCONNECTED)
        if self._running:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._attempts >= self.config.max_reconnect_attempts:
            self._exhausted = True
            _LOGGER.error("%s", ReconnectBudgetExhausted(self._attempts))
            return
        self._attempts += 1
        delay = self.config.backoff_ms(self._attempts)
        _LOGGER.info("scheduling reconnect attempt %d in %dms", self._attempts, delay)
        self._reconnect_timer = self.scheduler.call_later(delay, self._connect)

    # ─────────────────────────────────────────────────────────────────────────
    # Pages
    # ─────────────────────────────────────────────────────────────────────────

    def tab_updated(self, tab_id: str, url: str, title: str) -> None:
        """A page instance finished loading (or registered itself)."""
        tid = str(tab_id)
        self._live[tid] = (str(url or ""), str(title or ""))
        entry = self.registry.upsert(tid, url, title)
        if entry is None:
            # Navigated away from a provider host.
            self.registry.remove(tid)

    def tab_removed(self, tab_id: str) -> None:
        tid = str(tab_id)
        self._live.pop(tid, None)
        self.registry.remove(tid)

    def _on_page_message(self, tab_id: str, message: HostMessage) -> None:
        if message.type == REGISTER_TAB:
            payload = message.payload if isinstance(message.payload, dict) else {}
            self.tab_updated(tab_id, str(payload.get("url") or ""), str(payload.get("title") or ""))
            return
        if message.type == CAPTURE:
            if isinstance(message.payload, env.Envelope):
                self.send_capture(tab_id, message.payload)
            else:
                _LOGGER.debug("tab %s sent a capture without an envelope", tab_id)
            return
        _LOGGER.debug("tab %s sent unknown message type %s", tab_id, message.type)

    # ─────────────────────────────────────────────────────────────────────────
    # Outbound
    # ─────────────────────────────────────────────────────────────────────────

    def send_capture(self, tab_id: str, message: env.Envelope) -> bool:
        tid = str(tab_id)
        message.tab_ref = tid
        entry = self.registry.get(tid)
        if entry is not None:
            message.url = entry.url
            message.provider = entry.provider
            message.meta = {**message.meta, "tabTitle": entry.title}
        return self.send(message)

    def send(self, message: env.Envelope) -> bool:
        """Best-effort send. Dropped (and logged) unless connected; never queued."""
        try:
            if self._state is not ConnectionState.CONNECTED:
                raise SendWhileDisconnected(self._state.value)
            if not message.tab_ref:
                raise EncodingError("outbound envelope has no tab reference")
            text = env.encode(message)
            self.transport.send(text)
        except (SendWhileDisconnected, EncodingError, ConnectFailure) as exc:
            self.dropped += 1
            _LOGGER.warning("dropping %s for tab %r: %s", message.op.value, message.tab_ref, exc)
            return False
        self.sent += 1
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound
    # ─────────────────────────────────────────────────────────────────────────

    def _on_frame(self, gen: int, text: str) -> None:
        if gen != self._generation:
            return
        self.handle_frame(text)

    def handle_frame(self, text: str) -> bool:
        self.received += 1
        try:
            message = env.decode(text)
        except DecodingError as exc:
            _LOGGER.debug("ignoring undecodable frame: %s", exc)
            return False
        if message.op not in (env.Op.CMD, env.Op.STREAM):
            _LOGGER.debug("ignoring inbound %s frame", message.op.value)
            return False
        try:
            entry = self.registry.route(message.tab_ref)
        except RouteNotFound as exc:
            self.dropped += 1
            _LOGGER.warning("dropping inbound %s: %s", message.op.value, exc)
            return False
        if not self.bus.deliver(entry.id, message):
            self.dropped += 1
            _LOGGER.warning("failed to deliver %s to tab %s", message.op.value, entry.id)
            return False
        return True
