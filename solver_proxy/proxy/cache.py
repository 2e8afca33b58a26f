import hashlib
import json
import time
from typing import Any, Callable

from solver_proxy.ops.metrics import inc_cache_evictions, set_cache_entries

DEFAULT_TTL_SEC = 60 * 60
DEFAULT_MAX_SIZE = 1000


def compute_key(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CacheStore:
    """In-memory response cache with lazy TTL expiry.

    Eviction at capacity drops the first-inserted entry, not the least recently
    read one. Access is not locked: callers share one event loop.
    """

    def __init__(
        self,
        ttl_sec: float = DEFAULT_TTL_SEC,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_sec = ttl_sec
        self.max_size = max_size
        self._clock = clock
        # key -> (value, stored_at); dict order is insertion order
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at < self.ttl_sec:
            return value
        del self._entries[key]
        set_cache_entries(len(self._entries))
        return None

    def put(self, key: str, value: Any) -> None:
        if len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            inc_cache_evictions()
        self._entries[key] = (value, self._clock())
        set_cache_entries(len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        set_cache_entries(0)

    def stats(self) -> dict[str, float | int]:
        return {
            "entries": len(self._entries),
            "max_size": self.max_size,
            "ttl_sec": self.ttl_sec,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
