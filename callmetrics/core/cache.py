"""
In-memory TTL cache used as an optional, injected collaborator.

Holds the available-client list and recent comparison results keyed by a
stable signature of the request parameters. Nothing in the analytics engine
depends on a cache being present: every caller accepts ``cache=None`` and
falls through to the data store.

Semantics:
- get(key): returns the stored value, or None when missing or expired
  (expired entries are dropped on read and counted as misses).
- set(key, value, ttl_seconds): stores with an absolute expiry; the oldest
  entry is evicted once max_entries is exceeded.
- expire(key) / invalidate_prefix(prefix): explicit removal.
"""

import hashlib
import json
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple


_DEFAULT_TTL_SECONDS = 300.0
_MAX_ENTRIES = 1000


def make_cache_key(namespace: str, params: Any) -> str:
    """Build a deterministic key from a namespace and a dict or pydantic model of parameters."""
    if hasattr(params, 'model_dump'):
        data = params.model_dump(mode='json')
    elif isinstance(params, dict):
        data = params
    else:
        data = {'value': params}
    raw = json.dumps(data, sort_keys=True, default=str)
    return f"{namespace}:{hashlib.sha256(raw.encode()).hexdigest()}"


class TTLCache:
    """
    Thread-safe LRU-ordered cache with per-entry expiry.

    Args:
        default_ttl_seconds: TTL applied when set() is called without one.
        max_entries: Upper bound on stored entries.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        default_ttl_seconds: float = _DEFAULT_TTL_SECONDS,
        max_entries: int = _MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, expires_at = entry
            if now >= expires_at:
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def expire(self, key: str) -> bool:
        """Remove a single key. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        target = f"{prefix}:"
        with self._lock:
            keys = [k for k in self._entries if k.startswith(target)]
            for k in keys:
                self._entries.pop(k, None)
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def metrics(self) -> Dict[str, float]:
        with self._lock:
            total = self.hits + self.misses
            return {
                'entries': len(self._entries),
                'hits': self.hits,
                'misses': self.misses,
                'hit_rate_pct': round(self.hits * 100.0 / total, 2) if total > 0 else 0.0,
            }

    def __len__(self) -> int:
        return len(self._entries)
