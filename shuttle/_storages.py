from __future__ import annotations

import typing as tp
from dataclasses import dataclass, field

import httpx

__all__ = ("CacheEntry", "CacheStore")


@dataclass
class CacheEntry:
    status_code: int
    headers: tp.List[tp.Tuple[bytes, bytes]]
    content: bytes
    """Raw body, still content-encoded, so a replay decodes like the original."""

    stored_at: float
    """Wall-clock time of storage in milliseconds."""

    extensions: tp.Dict[str, tp.Any] = field(default_factory=dict)

    def age(self, now: float) -> float:
        return now - self.stored_at

    def to_response(self) -> httpx.Response:
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            content=self.content,
            extensions={**self.extensions, "from_cache": True, "cached_at": self.stored_at},
        )


class CacheStore:
    """
    An in-memory map from canonical request keys to cached responses.

    Entries are evicted lazily by the cache controller, never by a background sweep.
    """

    def __init__(self) -> None:
        self._entries: tp.Dict[str, CacheEntry] = {}

    def get(self, key: str) -> tp.Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> tp.List[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
