"""Known AI-chat providers and the page adapters built from them.

Adding a provider is a row in `PROVIDERS`; the adapter behavior is shared.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlparse

if TYPE_CHECKING:
    from .page.document import PageDocument, PageElement

GENERIC = "Generic"
_DEFAULT_INPUT = 'textarea, [contenteditable="true"]'


@dataclass(frozen=True)
class ProviderProfile:
    name: str
    hosts: tuple[str, ...]
    message_selector: str
    input_selector: str = _DEFAULT_INPUT


PROVIDERS: tuple[ProviderProfile, ...] = (
    ProviderProfile(
        name="ChatGPT",
        hosts=("chat.openai.com",),
        message_selector="[data-message-author-role]",
        input_selector='textarea[data-id="root"], [contenteditable="true"]',
    ),
    ProviderProfile(
        name="Claude",
        hosts=("claude.ai",),
        message_selector='[data-testid="message"]',
    ),
    ProviderProfile(
        name="Gemini",
        hosts=("gemini.google.com",),
        message_selector="[data-message-container]",
    ),
)


def _hostname(url: str) -> str:
    try:
        host = urlparse(str(url or "")).hostname or ""
    except Exception:
        host = ""
    return host.strip().lower().rstrip(".")


def host_matches(host: str, allowed: str) -> bool:
    host = (host or "").strip().lower().rstrip(".")
    allowed = (allowed or "").strip().lower().lstrip(".").rstrip(".")
    if not host or not allowed:
        return False
    return host == allowed or host.endswith("." + allowed)


def provider_for_url(url: str) -> str | None:
    """Provider name for a page address, or None when the host is not a known provider."""
    host = _hostname(url)
    for profile in PROVIDERS:
        if any(host_matches(host, h) for h in profile.hosts):
            return profile.name
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Adapters
# ─────────────────────────────────────────────────────────────────────────────


class PageAdapter(ABC):
    """Provider-specific view of a page: which elements are messages, where input goes."""

    name: str

    @property
    def provider(self) -> str | None:
        """Provider name stamped on captures (None for pages outside the table)."""
        return self.name

    @abstractmethod
    def match(self, *, url: str) -> bool:
        """Return True if the adapter applies to the given URL."""

    @abstractmethod
    def is_message_element(self, element: PageElement) -> bool:
        """Return True if an added element is (or contains) a chat message."""

    @abstractmethod
    def message_elements(self, document: PageDocument) -> list[PageElement]:
        """All chat message elements currently on the page, in document order."""

    @abstractmethod
    def default_input(self, document: PageDocument) -> PageElement | None:
        """The element inbound text goes to when no selector is given."""


class ProviderAdapter(PageAdapter):
    def __init__(self, profile: ProviderProfile) -> None:
        self.profile = profile
        self.name = profile.name

    def match(self, *, url: str) -> bool:
        host = _hostname(url)
        return any(host_matches(host, h) for h in self.profile.hosts)

    def is_message_element(self, element: PageElement) -> bool:
        sel = self.profile.message_selector
        try:
            return bool(element.matches(sel) or element.query_selector(sel) is not None)
        except Exception:
            return False

    def message_elements(self, document: PageDocument) -> list[PageElement]:
        return list(document.query_selector_all(self.profile.message_selector))

    def default_input(self, document: PageDocument) -> PageElement | None:
        return document.query_selector(self.profile.input_selector)


class GenericAdapter(PageAdapter):
    """Fallback for pages outside the provider table: observed, never matches messages."""

    name = GENERIC

    @property
    def provider(self) -> str | None:
        return None

    def match(self, *, url: str) -> bool:
        return True

    def is_message_element(self, element: PageElement) -> bool:
        return False

    def message_elements(self, document: PageDocument) -> list[PageElement]:
        return []

    def default_input(self, document: PageDocument) -> PageElement | None:
        return document.query_selector(_DEFAULT_INPUT)


class AdapterRegistry:
    def __init__(self, *, fallback: PageAdapter | None = None) -> None:
        self._adapters: dict[str, PageAdapter] = {}
        self._fallback = fallback or GenericAdapter()

    def register(self, adapter: PageAdapter) -> None:
        self._adapters[str(adapter.name)] = adapter

    def available(self) -> list[str]:
        return sorted(self._adapters.keys())

    def get(self, name: str) -> PageAdapter | None:
        return self._adapters.get(str(name))

    def select(self, *, url: str) -> PageAdapter:
        u = str(url or "").strip()
        if u:
            for ad in self._adapters.values():
                try:
                    if ad.match(url=u):
                        return ad
                except Exception:
                    continue
        return self._fallback


adapter_registry = AdapterRegistry()
for _profile in PROVIDERS:
    adapter_registry.register(ProviderAdapter(_profile))
