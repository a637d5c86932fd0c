"""The page surface a page agent works against.

Implementations wrap whatever actually hosts the page (a browser tab driven
over CDP, an in-memory tree in tests). The agent never touches anything else.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class KeyPress:
    key: str
    alt: bool = False
    ctrl: bool = False
    shift: bool = False
    meta: bool = False


class PageElement(Protocol):
    @property
    def tag_name(self) -> str: ...

    def matches(self, selector: str) -> bool: ...

    def query_selector(self, selector: str) -> PageElement | None: ...

    def text_content(self) -> str: ...

    def is_value_bearing(self) -> bool:
        """True for form controls whose content lives in `value` (textarea, input)."""
        ...

    def is_content_editable(self) -> bool: ...

    def get_value(self) -> str: ...

    def set_value(self, text: str) -> None: ...

    def set_text_content(self, text: str) -> None: ...

    def dispatch_event(self, event_type: str) -> None:
        """Fire a bubbling DOM event so the page's own listeners see the change."""
        ...

    def focus(self) -> None: ...

    def click(self) -> None: ...


# Callback receives the elements added by one batch of DOM mutations.
MutationCallback = Callable[[list[PageElement]], None]
SelectionCallback = Callable[[str], None]
# Returns True when the key press was consumed.
KeyCallback = Callable[[KeyPress], bool]


class PageDocument(Protocol):
    @property
    def url(self) -> str: ...

    @property
    def title(self) -> str: ...

    @property
    def lang(self) -> str: ...

    def query_selector(self, selector: str) -> PageElement | None: ...

    def query_selector_all(self, selector: str) -> list[PageElement]: ...

    def observe(self, callback: MutationCallback) -> Unsubscribe:
        """Notify on element additions anywhere in the body subtree."""
        ...

    def on_selection_change(self, callback: SelectionCallback) -> Unsubscribe: ...

    def on_key(self, callback: KeyCallback) -> Unsubscribe: ...

    def navigate(self, url: str, *, title: str | None = None) -> None:
        """Load a new URL in place. Agents attached to the old page must be restarted."""
        ...
