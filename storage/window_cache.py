from __future__ import annotations

import fnmatch
import json
import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from app.schemas import Component, CurrentValue
from models.errors import TransientStoreError
from settings import get_settings


@dataclass(slots=True)
class _Entry:
    payload: str
    expires_at: Optional[float]


class CacheTransaction:
    """Read/write view over a set of keys held exclusively by one caller."""

    def __init__(self, cache: "WindowCache", keys: Sequence[str]) -> None:
        self._cache = cache
        self._keys = frozenset(keys)

    def get(self, key: str) -> Any:
        self._check(key)
        return self._cache._read(key)

    def setex(self, key: str, ttl: Optional[float], value: Any) -> None:
        self._check(key)
        self._cache._write(key, value, ttl)

    def delete(self, key: str) -> bool:
        self._check(key)
        return self._cache._remove(key)

    def _check(self, key: str) -> None:
        if key not in self._keys:
            raise KeyError(f"Key {key!r} is not part of this transaction.")


class WindowCache:
    """In-process key-value cache with per-key TTL and atomic multi-key updates.

    Values are stored JSON-encoded, so callers always receive fresh copies.
    ``transaction`` locks only the keys it names: updates for different
    devices never wait on each other.
    """

    def __init__(
        self,
        name: str = "windows",
        clock: Callable[[], float] = time.monotonic,
        lock_timeout: Optional[float] = None,
    ) -> None:
        self.name = name
        self.lock_timeout = lock_timeout
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._key_locks: Dict[str, Lock] = {}
        self._lock = Lock()

    def get(self, key: str) -> Any:
        return self._read(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._write(key, value, ttl)

    def delete(self, key: str) -> bool:
        return self._remove(key)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, ``None`` if it never does or is absent."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry.expires_at is None:
                return None
            return max(entry.expires_at - self._clock(), 0.0)

    def keys(self, pattern: str = "*") -> List[str]:
        with self._lock:
            now = self._clock()
            return sorted(
                key
                for key, entry in self._entries.items()
                if not _expired(entry, now) and fnmatch.fnmatchcase(key, pattern)
            )

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if _expired(entry, now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    @contextmanager
    def transaction(self, *keys: str, timeout: Optional[float] = None) -> Iterator[CacheTransaction]:
        """Hold ``keys`` exclusively for the duration of the block.

        Raises ``TransientStoreError`` when the keys cannot be acquired within
        ``timeout`` seconds.
        """
        wait = self.lock_timeout if timeout is None else timeout
        ordered = sorted(set(keys))
        acquired: list[Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                got = lock.acquire(timeout=wait) if wait is not None else lock.acquire()
                if not got:
                    raise TransientStoreError(
                        f"Timed out waiting for key {key!r} in cache {self.name!r}."
                    )
                acquired.append(lock)
            yield CacheTransaction(self, ordered)
        finally:
            for lock in reversed(acquired):
                lock.release()

    def _lock_for(self, key: str) -> Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = Lock()
            return lock

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if _expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry

    def _read(self, key: str) -> Any:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            payload = entry.payload
        return json.loads(payload)

    def _write(self, key: str, value: Any, ttl: Optional[float]) -> None:
        payload = json.dumps(value)
        with self._lock:
            expires_at = self._clock() + ttl if ttl is not None else None
            self._entries[key] = _Entry(payload=payload, expires_at=expires_at)

    def _remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None


def _expired(entry: _Entry, now: float) -> bool:
    return entry.expires_at is not None and entry.expires_at <= now


class CurrentValueStore:
    """Latest structured reading per device, kept in a ``WindowCache``."""

    def __init__(self, cache: WindowCache) -> None:
        self.cache = cache

    @staticmethod
    def key_for(device_id: str) -> str:
        return f"device:{device_id}:current_value"

    def get(self, device_id: str) -> Optional[CurrentValue]:
        payload = self.cache.get(self.key_for(device_id))
        if payload is None:
            return None
        return [Component.model_validate(item) for item in payload]

    def put(self, device_id: str, value: CurrentValue) -> None:
        payload = [component.model_dump(mode="json") for component in value]
        self.cache.set(self.key_for(device_id), payload)


@lru_cache
def build_default_cache(name: Optional[str] = None) -> WindowCache:
    settings = get_settings()
    return WindowCache(name=name or "windows", lock_timeout=settings.store_timeout)
