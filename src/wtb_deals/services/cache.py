"""Simple cache abstractions."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(tz=UTC)


class Cache(Protocol):
    """Cache interface for simple key-value data."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present and not expired."""

    def set(self, key: str, value: object, ttl_seconds: float) -> None:
        """Store a cached value with a TTL in seconds."""

    def delete(self, key: str) -> None:
        """Remove a cached value."""


@dataclass
class _CacheEntry:
    value: object
    expires_at: datetime


@dataclass
class InMemoryCache(Cache):
    """In-memory cache with absolute expiry per entry.

    Expired entries are reaped when read and swept out on every write.
    ``set`` always overwrites, which doubles as the refresh operation.
    """

    _entries: dict[str, _CacheEntry]
    clock: Callable[[], datetime]

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._entries = {}
        self.clock = clock

    def get(self, key: str) -> object | None:
        """Return a cached value if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: object, ttl_seconds: float) -> None:
        """Store a cached value with a TTL."""
        self.set_until(key, value, self.clock() + timedelta(seconds=ttl_seconds))

    def set_until(self, key: str, value: object, expires_at: datetime) -> None:
        """Store a cached value with an absolute expiry."""
        self.prune()
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def delete(self, key: str) -> None:
        """Remove a cached value if present."""
        self._entries.pop(key, None)

    def prune(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self.clock()
        expired = [
            key for key, entry in self._entries.items() if now >= entry.expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def live_items(self, prefix: str = "") -> list[tuple[str, object]]:
        """Return unexpired entries whose key starts with prefix."""
        items = []
        for key in list(self._entries):
            if not key.startswith(prefix):
                continue
            value = self.get(key)
            if value is not None:
                items.append((key, value))
        return items

    def __len__(self) -> int:
        return len(self.live_items())
