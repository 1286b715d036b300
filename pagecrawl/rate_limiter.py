from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit


def host_key(url: str) -> str:
    return (urlsplit(url).netloc or "").lower()


class HostRateLimiter:
    """Thread-safe per-host politeness limiter.

    Calling acquire(url) blocks the current thread until at least ``delay``
    seconds have passed since the previous request to the same host. Each
    host has its own lock, so a slow host never holds up the others."""

    def __init__(
        self,
        delay: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._delay = max(0.0, delay)
        self._clock = clock
        self._sleep = sleep
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._next_allowed: Dict[str, float] = {}

    def _host_lock(self, host: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(host)
            if lock is None:
                lock = self._locks[host] = threading.Lock()
            return lock

    def acquire(self, url: str, delay: Optional[float] = None) -> float:
        """Block until the next request to the url's host is permitted.

        Returns the number of seconds spent waiting."""
        delay = self._delay if delay is None else max(0.0, delay)
        host = host_key(url)
        waited = 0.0
        with self._host_lock(host):
            now = self._clock()
            next_allowed = self._next_allowed.get(host, 0.0)
            if delay > 0 and now < next_allowed:
                waited = next_allowed - now
                self._sleep(waited)
            self._next_allowed[host] = self._clock() + delay
        return waited
