from __future__ import annotations

import csv
import json
import queue
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import BatchFailure, BatchReport, ExtractedRecord

Outcome = Union[ExtractedRecord, BatchFailure]


class StorageBase(ABC):
    """Abstract base class for outcome sinks.

    The batch coordinator calls write() once for every record and every
    failure as they arrive; close() is called by the owner.
    """

    @abstractmethod
    def write(self, outcome: Outcome) -> None:
        """Persist a single record or failure."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""


def outcome_to_dict(outcome: Outcome) -> Dict[str, Any]:
    if isinstance(outcome, BatchFailure):
        return {"type": "failure", **outcome.to_dict()}
    return {"type": "record", "url": outcome.url, "index": outcome.index, "fields": outcome.fields}


class JsonlStorage(StorageBase):
    """Streams outcomes as JSON Lines (.jsonl) using a background writer thread."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._queue: queue.Queue[Optional[Outcome]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def write(self, outcome: Outcome) -> None:
        """Enqueue an outcome for background writing."""
        self._queue.put(outcome)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(outcome_to_dict(item), ensure_ascii=False) + "\n")
                f.flush()


class MemoryStorage(StorageBase):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.items: List[Outcome] = []
        self.closed = False

    def write(self, outcome: Outcome) -> None:
        with self._lock:
            self.items.append(outcome)

    def close(self) -> None:
        self.closed = True


def _column_order(rows: Sequence[Dict[str, str]]) -> List[str]:
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def write_records(report: BatchReport, path: str) -> int:
    """Write report records to CSV, or JSON Lines when path ends in .jsonl/.json.

    CSV output has a ``source_url`` column followed by every field name in
    first-seen order; missing fields are left blank. Returns the row count."""
    rows = report.rows()
    if path.endswith((".jsonl", ".json")):
        with open(path, "w", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row, ensure_ascii=False) + "\n")
        return len(rows)

    columns = _column_order(rows) or ["source_url"]
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, restval="")
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def write_failures(report: BatchReport, path: str) -> int:
    with open(path, "w", encoding="utf-8") as f:
        for failure in report.failures:
            f.write(json.dumps(failure.to_dict(), ensure_ascii=False) + "\n")
    return len(report.failures)
