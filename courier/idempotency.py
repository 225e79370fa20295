import threading
import time
from collections import OrderedDict
from typing import Callable


class IdempotencyCache:
    """
    Bounded, expiring set of idempotency keys.

    ``claim`` is an atomic test-and-set: exactly one caller gets ``True`` for a
    key until it expires or is released. When full, the least recently
    claimed key is evicted.
    """

    def __init__(self, ttl_seconds: float = 86400, max_keys: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._keys: "OrderedDict[str, float]" = OrderedDict()

    def claim(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._expire(now)
            if key in self._keys:
                return False
            self._keys[key] = now + self.ttl_seconds
            while len(self._keys) > self.max_keys:
                self._keys.popitem(last=False)
            return True

    def release(self, key: str):
        with self._lock:
            self._keys.pop(key, None)

    def __contains__(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._expire(now)
            return key in self._keys

    def __len__(self):
        with self._lock:
            return len(self._keys)

    def _expire(self, now: float):
        # insertion order == expiry order since the ttl is fixed
        while self._keys:
            key, expires_at = next(iter(self._keys.items()))
            if expires_at > now:
                break
            self._keys.popitem(last=False)
