"""In-memory page surface backed by BeautifulSoup.

Used to host page agents without a browser (local runs, tests). DOM mutations
are driven explicitly through `append_html`, which notifies observers the way
a subtree mutation observer would.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from typing import Any

from bs4 import BeautifulSoup
from bs4.element import Tag

from .document import KeyCallback, KeyPress, MutationCallback, SelectionCallback, Unsubscribe

_VALUE_TAGS = frozenset({"textarea", "input"})


class SoupElement:
    __slots__ = ("_doc", "_tag")

    def __init__(self, doc: SoupDocument, tag: Tag) -> None:
        self._doc = doc
        self._tag = tag

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SoupElement) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        return f"SoupElement(<{self.tag_name}>)"

    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def tag_name(self) -> str:
        return str(self._tag.name or "").lower()

    def matches(self, selector: str) -> bool:
        return bool(self._tag.css.match(selector))

    def query_selector(self, selector: str) -> SoupElement | None:
        found = self._tag.select_one(selector)
        return SoupElement(self._doc, found) if found is not None else None

    def text_content(self) -> str:
        return self._tag.get_text()

    def is_value_bearing(self) -> bool:
        return self.tag_name in _VALUE_TAGS

    def is_content_editable(self) -> bool:
        node: Any = self._tag
        while isinstance(node, Tag):
            raw = node.get("contenteditable")
            if raw is not None:
                return str(raw).strip().lower() in {"", "true", "plaintext-only"}
            node = node.parent
        return False

    def get_value(self) -> str:
        raw = self._tag.get("value")
        if raw is not None:
            return str(raw)
        if self.tag_name == "textarea":
            return self._tag.get_text()
        return ""

    def set_value(self, text: str) -> None:
        self._tag["value"] = str(text)

    def set_text_content(self, text: str) -> None:
        self._tag.string = str(text)

    def dispatch_event(self, event_type: str) -> None:
        self._doc._record(self._tag, event_type)

    def focus(self) -> None:
        self._doc._focused = self._tag
        self._doc._record(self._tag, "focus")

    def click(self) -> None:
        self._doc._record(self._tag, "click")

    @property
    def events(self) -> list[str]:
        return self._doc.events_for(self)


class SoupDocument:
    def __init__(
        self,
        html: str,
        *,
        url: str,
        title: str | None = None,
        parser: str = "html.parser",
    ) -> None:
        self._soup = BeautifulSoup(html or "", parser)
        self._parser = parser
        self._url = str(url or "")
        self._title = title
        self._selection = ""
        self._focused: Tag | None = None
        self._events: list[tuple[Tag, str]] = []
        self._observers: list[MutationCallback] = []
        self._selection_listeners: list[SelectionCallback] = []
        self._key_listeners: list[KeyCallback] = []

    # ─────────────────────────────────────────────────────────────────────────
    # PageDocument
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        if self._title is not None:
            return self._title
        node = self._soup.title
        return node.get_text().strip() if node is not None else ""

    @property
    def lang(self) -> str:
        root = self._soup.find("html")
        if isinstance(root, Tag):
            raw = str(root.get("lang") or "").strip()
            if raw:
                return raw
        return "en"

    def query_selector(self, selector: str) -> SoupElement | None:
        found = self._soup.select_one(selector)
        return SoupElement(self, found) if found is not None else None

    def query_selector_all(self, selector: str) -> list[SoupElement]:
        return [SoupElement(self, t) for t in self._soup.select(selector)]

    def observe(self, callback: MutationCallback) -> Unsubscribe:
        return self._subscribe(self._observers, callback)

    def on_selection_change(self, callback: SelectionCallback) -> Unsubscribe:
        return self._subscribe(self._selection_listeners, callback)

    def on_key(self, callback: KeyCallback) -> Unsubscribe:
        return self._subscribe(self._key_listeners, callback)

    # ─────────────────────────────────────────────────────────────────────────
    # Driving the page
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def active_element(self) -> SoupElement | None:
        return SoupElement(self, self._focused) if self._focused is not None else None

    def navigate(self, url: str, *, title: str | None = None) -> None:
        self._url = str(url or "")
        if title is not None:
            self._title = title
        self._selection = ""

    def append_html(self, html: str, *, parent: str | None = None) -> list[SoupElement]:
        """Append parsed markup under `parent` (default: body) and notify observers."""
        target: Any = self._soup.select_one(parent) if parent else (self._soup.body or self._soup)
        if target is None:
            raise LookupError(f"no element matches {parent!r}")
        fragment = BeautifulSoup(html, self._parser)
        added: list[Tag] = [node for node in list(fragment.contents) if isinstance(node, Tag)]
        for node in list(fragment.contents):
            target.append(node.extract())
        if added:
            elements = [SoupElement(self, t) for t in added]
            for cb in list(self._observers):
                cb(elements)
            return elements
        return []

    def select_text(self, text: str) -> None:
        self._selection = str(text or "")
        for cb in list(self._selection_listeners):
            cb(self._selection)

    def press_key(self, key: str, *, alt: bool = False, ctrl: bool = False, shift: bool = False) -> bool:
        press = KeyPress(key=key, alt=alt, ctrl=ctrl, shift=shift)
        consumed = False
        for cb in list(self._key_listeners):
            if cb(press):
                consumed = True
        return consumed

    def events_for(self, element: SoupElement) -> list[str]:
        return [name for tag, name in self._events if tag is element.tag]

    def html(self) -> str:
        return str(self._soup)

    # ─────────────────────────────────────────────────────────────────────────

    def _record(self, tag: Tag, event_type: str) -> None:
        self._events.append((tag, str(event_type)))

    @staticmethod
    def _subscribe(listeners: list[Callable[..., Any]], callback: Callable[..., Any]) -> Unsubscribe:
        listeners.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                listeners.remove(callback)

        return _unsubscribe
