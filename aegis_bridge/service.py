from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, TypeVar

from .channel import CAPTURE_STATE, HostMessage, MessageBus
from .config import BridgeConfig
from .connector import Connector
from .page.agent import AgentOptions, PageAgent
from .page.document import PageDocument
from .status import StatusIndicator
from .timers import LoopScheduler
from .transport import Transport, WebSocketTransport

T = TypeVar("T")

TransportFactory = Callable[[asyncio.AbstractEventLoop], Transport]


class BridgeService:
    """Hosts the connector and page agents on one event loop in a daemon thread.

    Public methods are thread-safe: they marshal onto the loop and wait for
    the result. Everything the connector and agents do happens on that loop,
    so their state is never touched concurrently.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config or BridgeConfig.from_env()
        self._transport_factory = transport_factory or WebSocketTransport
        self.indicator = StatusIndicator()

        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped: asyncio.Event | None = None
        self._start_error: BaseException | None = None

        self.connector: Connector | None = None
        self.bus: MessageBus | None = None
        self._scheduler: LoopScheduler | None = None
        self._agents: dict[str, PageAgent] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._ready.clear()
        with self._lock:
            self._start_error = None
        t = threading.Thread(target=self._run_thread, name="aegis-bridge", daemon=True)
        self._thread = t
        t.start()
        if not self._ready.wait(timeout=max(0.05, float(wait_timeout))):
            raise RuntimeError("bridge service failed to start")
        with self._lock:
            err = self._start_error
        if err is not None:
            raise RuntimeError(f"bridge service failed to start: {err}") from err

    def stop(self, *, timeout: float = 2.0) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            with contextlib.suppress(Exception):
                loop.call_soon_threadsafe(self._shutdown)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)
        self._thread = None

    def is_running(self) -> bool:
        return bool(self._thread is not None and self._thread.is_alive() and self._ready.is_set())

    # ─────────────────────────────────────────────────────────────────────────
    # Pages
    # ─────────────────────────────────────────────────────────────────────────

    def open_page(self, tab_id: str, document: PageDocument, *, timeout: float = 5.0) -> PageAgent:
        return self._call(lambda: self._open_page(str(tab_id), document), timeout=timeout)

    def navigate(
        self, tab_id: str, url: str, title: str | None = None, *, timeout: float = 5.0
    ) -> PageAgent | None:
        """Navigate a hosted page; its agent restarts with the adapter for the new URL."""
        return self._call(lambda: self._navigate(str(tab_id), url, title), timeout=timeout)

    def close_page(self, tab_id: str, *, timeout: float = 5.0) -> None:
        self._call(lambda: self._close_page(str(tab_id)), timeout=timeout)

    def capture_state(self, tab_id: str, *, timeout: float = 5.0) -> bool:
        bus = self.bus
        if bus is None:
            return False
        return bool(self._call(lambda: bus.deliver(str(tab_id), HostMessage(CAPTURE_STATE)), timeout=timeout))

    def reconnect(self, *, timeout: float = 5.0) -> None:
        connector = self._require_connector()
        self._call(connector.reconnect, timeout=timeout)

    def status(self, *, timeout: float = 2.0) -> dict[str, Any]:
        connector = self.connector
        st: dict[str, Any] = {"running": self.is_running(), "indicator": self.indicator.snapshot()}
        if connector is not None and self.is_running():
            with contextlib.suppress(Exception):
                st["connector"] = self._call(connector.status, timeout=timeout)
        with self._lock:
            st["pages"] = sorted(self._agents.keys())
        return st

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (loop thread)
    # ─────────────────────────────────────────────────────────────────────────

    def _open_page(self, tab_id: str, document: PageDocument) -> PageAgent:
        bus = self.bus
        if bus is None:
            raise RuntimeError("bridge service is not running")
        self._close_page(tab_id)
        port = bus.open_port(tab_id)
        agent = PageAgent(document, port, self._require_scheduler(), options=AgentOptions.from_config(self.config))
        with self._lock:
            self._agents[tab_id] = agent
        agent.start()
        return agent

    def _navigate(self, tab_id: str, url: str, title: str | None) -> PageAgent | None:
        connector = self._require_connector()
        with self._lock:
            agent = self._agents.get(tab_id)
        if agent is None:
            connector.tab_updated(tab_id, url, title or "")
            return None
        document = agent.document
        document.navigate(url, title=title)
        # Same as a content-script reload: fresh adapter, registration and initial capture.
        restarted = self._open_page(tab_id, document)
        connector.tab_updated(tab_id, document.url, document.title)
        return restarted

    def _close_page(self, tab_id: str) -> None:
        with self._lock:
            agent = self._agents.pop(tab_id, None)
        if agent is not None:
            agent.stop()
        if self.bus is not None:
            self.bus.close_port(tab_id)
        if self.connector is not None:
            self.connector.tab_removed(tab_id)

    def _shutdown(self) -> None:
        with self._lock:
            tab_ids = list(self._agents.keys())
        for tid in tab_ids:
            self._close_page(tid)
        if self.connector is not None:
            self.connector.stop()
        if self._stopped is not None:
            self._stopped.set()

    def _run_thread(self) -> None:
        try:
            asyncio.run(self._run_async())
        finally:
            self._loop = None
            self._ready.set()

    async def _run_async(self) -> None:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._stopped = asyncio.Event()
        try:
            scheduler = LoopScheduler(loop)
            self._scheduler = scheduler
            self.bus = MessageBus(scheduler, capacity=self.config.channel_capacity)
            self.connector = Connector(
                self.config,
                transport=self._transport_factory(loop),
                scheduler=scheduler,
                bus=self.bus,
            )
            self.indicator.attach(self.connector)
            self.connector.start()
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._start_error = exc
            self._ready.set()
            return
        self._ready.set()
        await self._stopped.wait()
        # Let the transport observe its cancellation before the loop closes.
        await asyncio.sleep(0)

    def _require_scheduler(self) -> LoopScheduler:
        scheduler = self._scheduler
        if scheduler is None:
            raise RuntimeError("bridge service is not running")
        return scheduler

    def _require_connector(self) -> Connector:
        connector = self.connector
        if connector is None:
            raise RuntimeError("bridge service is not running")
        return connector

    def _call(self, fn: Callable[[], T], *, timeout: float) -> T:
        loop = self._loop
        if loop is None or not self.is_running():
            raise RuntimeError("bridge service is not running")
        fut: Future = Future()

        def _invoke() -> None:
            try:
                fut.set_result(fn())
            except Exception as exc:  # noqa: BLE001
                fut.set_exception(exc)

        loop.call_soon_threadsafe(_invoke)
        return fut.result(timeout=max(0.05, float(timeout)))
