from __future__ import annotations

from typing import Any

import pytest

from aegis_bridge.channel import CAPTURE, HostMessage, MessageBus
from aegis_bridge.timers import ManualScheduler


def test_delivery_is_deferred_and_ordered() -> None:
    sched = ManualScheduler()
    bus = MessageBus(sched)
    port = bus.open_port("1")
    seen: list[Any] = []
    port.on_message(seen.append)

    for i in range(5):
        assert bus.deliver("1", i) is True
    assert seen == []
    sched.run_pending()
    assert seen == [0, 1, 2, 3, 4]


def test_page_to_connector_carries_tab_id() -> None:
    sched = ManualScheduler()
    bus = MessageBus(sched)
    got: list[tuple[str, HostMessage]] = []
    bus.on_page_message(lambda tab_id, msg: got.append((tab_id, msg)))
    bus.open_port("5").send(HostMessage(CAPTURE, {"x": 1}))
    sched.run_pending()
    assert got == [("5", HostMessage(CAPTURE, {"x": 1}))]


def test_overflow_drops_newest(caplog: pytest.LogCaptureFixture) -> None:
    sched = ManualScheduler()
    bus = MessageBus(sched, capacity=2)
    port = bus.open_port("1")
    seen: list[Any] = []
    port.on_message(seen.append)

    assert port.deliver("a") and port.deliver("b")
    with caplog.at_level("WARNING", logger="aegis.bridge.channel"):
        assert port.deliver("c") is False
    assert "full" in caplog.text
    sched.run_pending()
    assert seen == ["a", "b"]


def test_deliver_to_unknown_or_closed_port() -> None:
    sched = ManualScheduler()
    bus = MessageBus(sched)
    assert bus.deliver("nope", 1) is False

    port = bus.open_port("1")
    seen: list[Any] = []
    port.on_message(seen.append)
    bus.deliver("1", "queued")
    bus.close_port("1")
    sched.run_pending()
    assert seen == []
    assert port.closed
    assert bus.deliver("1", "late") is False


def test_reopening_a_port_replaces_the_old_one() -> None:
    bus = MessageBus(ManualScheduler())
    first = bus.open_port("1")
    second = bus.open_port("1")
    assert first.closed
    assert bus.port("1") is second
    assert bus.tab_ids() == ["1"]
    with pytest.raises(ValueError):
        bus.open_port("  ")


def test_handler_failure_does_not_stop_the_drain() -> None:
    sched = ManualScheduler()
    bus = MessageBus(sched)
    port = bus.open_port("1")
    seen: list[Any] = []

    def _handler(msg: Any) -> None:
        if msg == "boom":
            raise RuntimeError("boom")
        seen.append(msg)

    port.on_message(_handler)
    for m in ("a", "boom", "b"):
        port.deliver(m)
    sched.run_pending()
    assert seen == ["a", "b"]
