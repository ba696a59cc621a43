"""In-memory TTL cache for generated comparison payloads."""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class ResultCache:
    """
    Fingerprint -> payload map with per-entry expiry.

    Expired entries are dropped lazily when read; there is no background
    sweep. ``set`` replaces any existing entry. Keys are opaque strings built
    by the caller.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, fingerprint: str) -> Optional[Any]:
        """Return the cached payload, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            payload, expires_at = entry
            if self._clock() > expires_at:
                del self._entries[fingerprint]
                return None
            return payload

    def set(self, fingerprint: str, payload: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[fingerprint] = (payload, self._clock() + ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
