from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

from .envelope import utc_timestamp
from .errors import RouteNotFound
from .providers import provider_for_url


@dataclass(frozen=True)
class TabEntry:
    id: str
    url: str
    title: str
    provider: str
    connected: bool
    last_seen: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "provider": self.provider,
            "connected": self.connected,
            "lastSeen": self.last_seen,
        }


class TabRegistry:
    """Page instances on known provider hosts. Owned and mutated by the connector only."""

    def __init__(self, *, clock: Callable[[], int] | None = None) -> None:
        self._entries: dict[str, TabEntry] = {}
        self._clock = clock

    def _now(self) -> str:
        return utc_timestamp(self._clock() if self._clock is not None else None)

    def upsert(self, tab_id: str, url: str, title: str) -> TabEntry | None:
        """Insert or refresh an entry. Pages on unknown hosts are not tracked."""
        tid = str(tab_id)
        provider = provider_for_url(url)
        if provider is None:
            return None
        entry = TabEntry(
            id=tid,
            url=str(url or ""),
            title=str(title or ""),
            provider=provider,
            connected=True,
            last_seen=self._now(),
        )
        self._entries[tid] = entry
        return entry

    def remove(self, tab_id: str) -> None:
        self._entries.pop(str(tab_id), None)

    def route(self, tab_ref: str) -> TabEntry:
        entry = self._entries.get(str(tab_ref or "").strip())
        if entry is None:
            raise RouteNotFound(str(tab_ref))
        return entry

    def get(self, tab_id: str) -> TabEntry | None:
        return self._entries.get(str(tab_id))

    def mark_all(self, *, connected: bool) -> None:
        for tid, entry in list(self._entries.items()):
            self._entries[tid] = replace(entry, connected=connected)

    def entries(self) -> list[TabEntry]:
        return list(self._entries.values())

    def __contains__(self, tab_id: object) -> bool:
        return str(tab_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
