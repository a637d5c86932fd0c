"""WebSocket transport for the connector.

Runs on the connector's event loop. `open()` starts one connection attempt as
a task; the callbacks fire on the loop: `on_open()` once the handshake
completes, `on_message(text)` per frame, and `on_close(error)` exactly once
when the attempt ends for any reason (handshake failure, remote close, local
close). No handshake timeout is applied; a hung connect ends only when the
underlying transport reports failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any, Protocol

from .errors import ConnectFailure

_LOGGER = logging.getLogger("aegis.bridge.transport")

OpenCallback = Callable[[], None]
MessageCallback = Callable[[str], None]
CloseCallback = Callable[[Exception | None], None]


def _import_websockets():
    try:
        import websockets  # type: ignore[import-not-found]

        return websockets
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The bridge connector requires the 'websockets' Python package. Install it (pip install websockets)."
        ) from exc


class Transport(Protocol):
    def open(
        self,
        uri: str,
        *,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_close: CloseCallback,
    ) -> None: ...

    def send(self, text: str) -> None: ...

    def close(self) -> None: ...


class WebSocketTransport:
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._task: asyncio.Task[Any] | None = None
        self._outbox: asyncio.Queue[str] | None = None

    @property
    def is_open(self) -> bool:
        return self._outbox is not None

    def open(
        self,
        uri: str,
        *,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_close: CloseCallback,
    ) -> None:
        self.close()
        self._task = self._loop.create_task(self._run(uri, on_open, on_message, on_close))

    def send(self, text: str) -> None:
        outbox = self._outbox
        if outbox is None:
            raise ConnectFailure("socket is not open")
        # Frames go out in order through one writer; the caller never waits.
        outbox.put_nowait(text)

    def close(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run(
        self,
        uri: str,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_close: CloseCallback,
    ) -> None:
        websockets = _import_websockets()
        error: Exception | None = None
        # Per attempt; a newer attempt may have installed its own by the time this one ends.
        outbox: asyncio.Queue[str] | None = None
        try:
            async with websockets.connect(uri, ping_interval=None, open_timeout=None, max_size=None) as ws:
                outbox = asyncio.Queue()
                failures: list[Exception] = []
                self._outbox = outbox
                writer = asyncio.create_task(self._write_loop(ws, outbox, failures))
                try:
                    on_open()
                    async for raw in ws:
                        if isinstance(raw, (bytes, bytearray)):
                            raw = bytes(raw).decode("utf-8", errors="replace")
                        on_message(raw)
                    if failures:
                        raise ConnectFailure(f"send failed: {failures[0]}")
                finally:
                    self._release(outbox)
                    writer.cancel()
                    with contextlib.suppress(asyncio.CancelledError, Exception):
                        await writer
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            error = exc if isinstance(exc, ConnectFailure) else ConnectFailure(str(exc) or type(exc).__name__)
        finally:
            self._release(outbox)
            try:
                on_close(error)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("transport close callback failed")

    def _release(self, outbox: asyncio.Queue[str] | None) -> None:
        if outbox is not None and self._outbox is outbox:
            self._outbox = None

    async def _write_loop(self, ws: Any, outbox: asyncio.Queue[str], failures: list[Exception]) -> None:
        while True:
            text = await outbox.get()
            try:
                await ws.send(text)
            except Exception as exc:  # noqa: BLE001
                # A failed write ends the attempt so on_close fires.
                _LOGGER.warning("bridge send failed, closing connection: %s", exc)
                failures.append(exc)
                with contextlib.suppress(Exception):
                    await ws.close()
                return
