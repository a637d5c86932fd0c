"""Injectable time source for the connector and page agents.

All delays are in milliseconds. `LoopScheduler` runs on an asyncio loop;
`ManualScheduler` is a virtual clock advanced explicitly, so backoff and
debounce behavior can be checked without sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now_ms(self) -> int: ...

    def call_later(self, delay_ms: int, fn: Callable[[], Any]) -> TimerHandle: ...

    def call_soon(self, fn: Callable[[], Any]) -> TimerHandle: ...


class LoopScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_ms: int, fn: Callable[[], Any]) -> TimerHandle:
        return self._loop.call_later(max(0, int(delay_ms)) / 1000.0, fn)

    def call_soon(self, fn: Callable[[], Any]) -> TimerHandle:
        return self._loop.call_soon(fn)


class _ManualHandle:
    __slots__ = ("when", "fn", "cancelled")

    def __init__(self, when: int, fn: Callable[[], Any]) -> None:
        self.when = when
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler driven by `advance()`.

    Callbacks due at the same instant run in scheduling order. Callbacks
    scheduled while advancing run in the same `advance()` call if they fall
    inside the window.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = int(start_ms)
        self._seq = itertools.count()
        self._heap: list[tuple[int, int, _ManualHandle]] = []
        self.delays: list[int] = []

    def now_ms(self) -> int:
        return self._now

    def call_later(self, delay_ms: int, fn: Callable[[], Any]) -> _ManualHandle:
        delay = max(0, int(delay_ms))
        self.delays.append(delay)
        handle = _ManualHandle(self._now + delay, fn)
        heapq.heappush(self._heap, (handle.when, next(self._seq), handle))
        return handle

    def call_soon(self, fn: Callable[[], Any]) -> _ManualHandle:
        handle = _ManualHandle(self._now, fn)
        heapq.heappush(self._heap, (handle.when, next(self._seq), handle))
        return handle

    def pending(self) -> list[int]:
        """Due times of callbacks that are still scheduled."""
        return sorted(h.when for _, _, h in self._heap if not h.cancelled)

    def advance(self, ms: int = 0) -> int:
        """Move the clock forward by `ms`, running every callback that falls due. Returns count run."""
        target = self._now + max(0, int(ms))
        ran = 0
        while self._heap and self._heap[0][0] <= target:
            when, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            handle.fn()
            ran += 1
        self._now = target
        return ran

    def run_pending(self) -> int:
        return self.advance(0)
