"""Per-page agent: turns page state into captures and applies inbound operations.

Lifecycle: `start()` registers the page with the connector once, subscribes
to DOM additions, selection changes and keyboard shortcuts, and schedules an
initial capture. `stop()` undoes all of that.

Message additions are debounced: every qualifying mutation restarts the
window, and a capture fires once the window passes quietly. Selection changes
bypass the debounce.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .. import envelope as env
from ..channel import CAPTURE, CAPTURE_STATE, REGISTER_TAB, HostMessage, PagePort
from ..config import BridgeConfig
from ..providers import PageAdapter, adapter_registry
from ..timers import Scheduler, TimerHandle
from .document import KeyPress, PageDocument, PageElement

_LOGGER = logging.getLogger("aegis.bridge.page")


@dataclass(frozen=True)
class AgentOptions:
    debounce_ms: int = 1000
    context_messages: int = 6
    initial_capture_ms: int = 2000
    model: str | None = None

    @classmethod
    def from_config(cls, config: BridgeConfig) -> AgentOptions:
        return cls(
            debounce_ms=config.debounce_ms,
            context_messages=config.context_messages,
            initial_capture_ms=config.initial_capture_ms,
            model=config.model,
        )


class PageAgent:
    def __init__(
        self,
        document: PageDocument,
        port: PagePort,
        scheduler: Scheduler,
        *,
        adapter: PageAdapter | None = None,
        options: AgentOptions | None = None,
    ) -> None:
        self.document = document
        self.port = port
        self.scheduler = scheduler
        self.adapter = adapter or adapter_registry.select(url=document.url)
        self.options = options or AgentOptions()

        self.last_selection = ""
        self.captures_sent = 0
        self._capturing = False
        self._registered = False
        self._debounce: TimerHandle | None = None
        self._initial: TimerHandle | None = None
        self._unsubscribe: list[Callable[[], None]] = []

    @property
    def provider(self) -> str | None:
        return self.adapter.provider

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._registered:
            return
        self._registered = True
        self.port.send(
            HostMessage(
                REGISTER_TAB,
                {"url": self.document.url, "title": self.document.title, "provider": self.adapter.name},
            )
        )
        self._unsubscribe = [
            self.document.observe(self._on_mutations),
            self.document.on_selection_change(self._on_selection_change),
            self.document.on_key(self._on_key),
        ]
        self.port.on_message(self.handle_message)
        self._initial = self.scheduler.call_later(self.options.initial_capture_ms, self._initial_capture)
        _LOGGER.info("page agent started tab=%s provider=%s", self.port.tab_id, self.adapter.name)

    def stop(self) -> None:
        for unsub in self._unsubscribe:
            unsub()
        self._unsubscribe = []
        self.port.on_message(None)
        for handle in (self._debounce, self._initial):
            if handle is not None:
                handle.cancel()
        self._debounce = None
        self._initial = None

    # ─────────────────────────────────────────────────────────────────────────
    # Observation
    # ─────────────────────────────────────────────────────────────────────────

    def _on_mutations(self, added: list[PageElement]) -> None:
        if self._capturing:
            return
        if any(self.adapter.is_message_element(el) for el in added):
            self._debounce_capture()

    def _debounce_capture(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = self.scheduler.call_later(self.options.debounce_ms, self._debounced_capture)

    def _debounced_capture(self) -> None:
        self._debounce = None
        self.capture_current_state()

    def _initial_capture(self) -> None:
        self._initial = None
        self.capture_current_state()

    def _on_selection_change(self, text: str) -> None:
        selected = str(text or "").strip()
        if not selected:
            return
        self.last_selection = selected
        self.capture_selection()

    def _on_key(self, press: KeyPress) -> bool:
        if not press.alt:
            return False
        key = press.key.lower()
        if key == "m":
            self.capture_selection()
            return True
        if key == "r":
            # Recall last reply: a full capture picks up the newest message.
            self.capture_current_state()
            return True
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Capture
    # ─────────────────────────────────────────────────────────────────────────

    def extract_context(self) -> str:
        elements = self.adapter.message_elements(self.document)
        tail = elements[-max(1, int(self.options.context_messages)) :]
        texts = [el.text_content().strip() for el in tail]
        return "\n\n".join(t for t in texts if t)

    def capture_current_state(self) -> bool:
        self._capturing = True
        try:
            context = self.extract_context()
            selection = self.last_selection
            if not (context or selection):
                return False
            return self._send_capture(selection=selection, context=context)
        finally:
            self._capturing = False

    def capture_selection(self) -> bool:
        if not self.last_selection:
            return False
        return self._send_capture(selection=self.last_selection, context=self.extract_context())

    def _send_capture(self, *, selection: str, context: str) -> bool:
        meta: dict[str, Any] = {"lang": self.document.lang or "en", "tabTitle": self.document.title}
        if self.options.model:
            meta["model"] = self.options.model
        message = env.push(
            selection=selection,
            context=context,
            url=self.document.url,
            provider=self.adapter.provider,
            meta=meta,
            timestamp=env.utc_timestamp(self.scheduler.now_ms()),
        )
        ok = self.port.send(HostMessage(CAPTURE, message))
        if ok:
            self.captures_sent += 1
        return ok

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound
    # ─────────────────────────────────────────────────────────────────────────

    def handle_message(self, message: Any) -> None:
        if isinstance(message, HostMessage):
            if message.type == CAPTURE_STATE:
                self.capture_current_state()
            else:
                _LOGGER.debug("tab %s ignoring host message %s", self.port.tab_id, message.type)
            return
        if not isinstance(message, env.Envelope):
            _LOGGER.debug("tab %s ignoring non-envelope message", self.port.tab_id)
            return
        if message.op is env.Op.CMD and isinstance(message.body, env.CommandBody):
            self.handle_command(message.body)
        elif message.op is env.Op.STREAM and isinstance(message.body, env.StreamBody):
            self.handle_stream(message.body)
        else:
            _LOGGER.info("tab %s unknown message operation: %s", self.port.tab_id, message.op.value)

    def handle_command(self, body: env.CommandBody) -> bool:
        action = body.action
        if action == "inject":
            return self._write_text(body.text or "", body.selector, append=True)
        if action == "replace":
            return self._write_text(body.text or "", body.selector, append=False)
        if action == "focus":
            element = self._find_input(body.selector)
            if element is None:
                return self._unmatched(action, body.selector)
            element.focus()
            return True
        if action == "click":
            element = self._find_input(body.selector)
            if element is None:
                return self._unmatched(action, body.selector)
            element.click()
            return True
        _LOGGER.warning("tab %s unknown action: %r", self.port.tab_id, action)
        return False

    def handle_stream(self, body: env.StreamBody) -> bool:
        if not body.delta:
            return False
        element = self.adapter.default_input(self.document)
        if element is None:
            return self._unmatched("stream", None)
        if not _is_editable(element):
            return False
        _set_content(element, _current_content(element) + body.delta)
        element.dispatch_event("input")
        return True

    def _write_text(self, text: str, selector: str | None, *, append: bool) -> bool:
        element = self._find_input(selector)
        action = "inject" if append else "replace"
        if element is None:
            return self._unmatched(action, selector)
        if not _is_editable(element):
            _LOGGER.info("tab %s %s target <%s> is not editable", self.port.tab_id, action, element.tag_name)
            return False
        new_text = _current_content(element) + text if append else text
        _set_content(element, new_text)
        element.dispatch_event("input")
        element.dispatch_event("change")
        return True

    def _find_input(self, selector: str | None) -> PageElement | None:
        if selector:
            try:
                return self.document.query_selector(selector)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.info("tab %s invalid selector %r: %s", self.port.tab_id, selector, exc)
                return None
        return self.adapter.default_input(self.document)

    def _unmatched(self, action: str, selector: str | None) -> bool:
        _LOGGER.info("tab %s %s: no element matches %r", self.port.tab_id, action, selector or "<default input>")
        return False


def _is_editable(element: PageElement) -> bool:
    return element.is_value_bearing() or element.is_content_editable()


def _current_content(element: PageElement) -> str:
    if element.is_value_bearing():
        return element.get_value()
    return element.text_content()


def _set_content(element: PageElement, text: str) -> None:
    if element.is_value_bearing():
        element.set_value(text)
        # Keep the visible text in step for textareas that render their child text.
        if element.tag_name == "textarea":
            element.set_text_content(text)
    else:
        element.set_text_content(text)
