from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Deque, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class AttemptEvent:
    url: str
    host: str
    attempt: int
    status_code: Optional[int]
    reason: Optional[str]
    latency_ms: int

    @property
    def success(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_attempts: int
    success_count: int
    timeout_count: int
    conn_error_count: int
    server_error_count: int
    not_found_count: int
    retry_count: int
    avg_latency_ms: float
    timestamp: float


class MetricsCollector:
    """Thread-safe collector for per-attempt fetch metrics.

    Records one AttemptEvent per HTTP attempt and produces aggregated
    MetricsSnapshot objects over configurable sliding time windows."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, AttemptEvent]] = deque(maxlen=maxlen)

    def record_attempt(self, event: AttemptEvent) -> None:
        """Record an attempt with the current timestamp."""
        with self._lock:
            self._events.append((time.time(), event))

    def snapshot(self, window_secs: int = 0) -> MetricsSnapshot:
        """Aggregate events within the last window_secs seconds (0 = everything)."""
        now = time.time()
        cutoff = now - window_secs if window_secs > 0 else float("-inf")
        with self._lock:
            events: List[AttemptEvent] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        avg_latency_ms = (sum(e.latency_ms for e in events) / total) if total else 0.0

        return MetricsSnapshot(
            window_secs=window_secs,
            total_attempts=total,
            success_count=sum(1 for e in events if e.success),
            timeout_count=sum(1 for e in events if e.reason == "Timeout"),
            conn_error_count=sum(1 for e in events if e.reason == "ConnectionError"),
            server_error_count=sum(1 for e in events if e.reason == "ServerError"),
            not_found_count=sum(1 for e in events if e.reason == "NotFound"),
            retry_count=sum(1 for e in events if e.attempt > 1),
            avg_latency_ms=avg_latency_ms,
            timestamp=now,
        )

    def attempts_for(self, url: str) -> int:
        with self._lock:
            return sum(1 for _, e in self._events if e.url == url)

    def export_json(self) -> List[Dict]:
        """Export all recorded events as a list of dictionaries."""
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]

    def export_csv_rows(self) -> Iterable[Dict]:
        """Yield recorded events as flat dictionaries suitable for CSV export."""
        with self._lock:
            events = list(self._events)
        for ts, e in events:
            yield {"timestamp": ts, **asdict(e)}
