"""Bounded in-process channel between the connector and page agents.

Each page instance gets a `PagePort`. Both directions are FIFO queues bounded
by `capacity`; overflow drops the newest message with a warning. Delivery is
asynchronous: posting never runs the receiver inline, it schedules a drain on
the shared scheduler.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .envelope import Envelope
from .timers import Scheduler

_LOGGER = logging.getLogger("aegis.bridge.channel")

REGISTER_TAB = "REGISTER_TAB"
CAPTURE = "CAPTURE"
CAPTURE_STATE = "CAPTURE_STATE"


@dataclass(frozen=True)
class HostMessage:
    type: str
    payload: dict[str, Any] | Envelope | None = field(default=None)


# Page -> connector: (tab id, message). Connector -> page: Envelope or HostMessage.
PageHandler = Callable[[str, HostMessage], None]
AgentHandler = Callable[[Any], None]


class _Queue:
    def __init__(self, name: str, capacity: int, scheduler: Scheduler, sink: Callable[[Any], None]) -> None:
        self._name = name
        self._capacity = max(1, int(capacity))
        self._scheduler = scheduler
        self._sink = sink
        self._items: deque[Any] = deque()
        self._drain_scheduled = False
        self.dropped = 0
        self.closed = False

    def put(self, item: Any) -> bool:
        if self.closed:
            return False
        if len(self._items) >= self._capacity:
            self.dropped += 1
            _LOGGER.warning("channel %s full (%d), dropping message", self._name, self._capacity)
            return False
        self._items.append(item)
        if not self._drain_scheduled:
            self._drain_scheduled = True
            self._scheduler.call_soon(self._drain)
        return True

    def _drain(self) -> None:
        self._drain_scheduled = False
        while self._items and not self.closed:
            item = self._items.popleft()
            try:
                self._sink(item)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("channel %s handler failed", self._name)

    def close(self) -> None:
        self.closed = True
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class PagePort:
    """The page agent's end of the channel."""

    def __init__(self, bus: MessageBus, tab_id: str) -> None:
        self._bus = bus
        self.tab_id = tab_id
        self._handler: AgentHandler | None = None
        self._outbound = _Queue(f"{tab_id}->connector", bus.capacity, bus.scheduler, self._to_connector)
        self._inbound = _Queue(f"connector->{tab_id}", bus.capacity, bus.scheduler, self._to_agent)

    def on_message(self, handler: AgentHandler | None) -> None:
        self._handler = handler

    def send(self, message: HostMessage) -> bool:
        return self._outbound.put(message)

    def deliver(self, message: Any) -> bool:
        return self._inbound.put(message)

    @property
    def closed(self) -> bool:
        return self._inbound.closed

    def close(self) -> None:
        self._outbound.close()
        self._inbound.close()

    def _to_connector(self, message: HostMessage) -> None:
        self._bus._dispatch_to_connector(self.tab_id, message)

    def _to_agent(self, message: Any) -> None:
        handler = self._handler
        if handler is None:
            _LOGGER.debug("tab %s has no agent handler, dropping inbound message", self.tab_id)
            return
        handler(message)


class MessageBus:
    def __init__(self, scheduler: Scheduler, *, capacity: int = 256) -> None:
        self.scheduler = scheduler
        self.capacity = max(1, int(capacity))
        self._ports: dict[str, PagePort] = {}
        self._connector_handler: PageHandler | None = None

    def on_page_message(self, handler: PageHandler | None) -> None:
        self._connector_handler = handler

    def open_port(self, tab_id: str) -> PagePort:
        tid = str(tab_id or "").strip()
        if not tid:
            raise ValueError("tab_id is required")
        old = self._ports.pop(tid, None)
        if old is not None:
            old.close()
        port = PagePort(self, tid)
        self._ports[tid] = port
        return port

    def close_port(self, tab_id: str) -> None:
        port = self._ports.pop(str(tab_id), None)
        if port is not None:
            port.close()

    def port(self, tab_id: str) -> PagePort | None:
        return self._ports.get(str(tab_id))

    def tab_ids(self) -> list[str]:
        return list(self._ports.keys())

    def deliver(self, tab_id: str, message: Any) -> bool:
        port = self._ports.get(str(tab_id))
        if port is None:
            return False
        return port.deliver(message)

    def _dispatch_to_connector(self, tab_id: str, message: HostMessage) -> None:
        handler = self._connector_handler
        if handler is None:
            _LOGGER.debug("no connector attached, dropping %s from tab %s", message.type, tab_id)
            return
        handler(tab_id, message)
