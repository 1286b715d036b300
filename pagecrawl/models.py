from __future__ import annotations

import datetime as _dt
import threading
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ConfigurationError(ValueError):
    """Raised for invalid batch or extraction settings, before any work starts."""


class FailureReason(str, Enum):
    TIMEOUT = "Timeout"
    NOT_FOUND = "NotFound"
    SERVER_ERROR = "ServerError"
    CONNECTION_ERROR = "ConnectionError"
    CLIENT_ERROR = "ClientError"
    POLICY_EXCLUDED = "PolicyExcluded"
    NO_MATCH = "NoMatch"
    EMPTY_RESULT = "EmptyResult"
    INTERNAL_ERROR = "InternalError"

    @property
    def is_transient(self) -> bool:
        return self in (FailureReason.TIMEOUT, FailureReason.SERVER_ERROR)


class ExtractionKind(str, Enum):
    TEXT = "text"
    ATTRIBUTE = "attribute"
    TABLE = "table"


@dataclass(frozen=True)
class FetchRequest:
    url: str
    attempt: int = 0

    def next_attempt(self) -> "FetchRequest":
        return replace(self, attempt=self.attempt + 1)


@dataclass(frozen=True)
class FetchSuccess:
    url: str
    content: str
    fetched_at: _dt.datetime
    status_code: int
    attempts: int


@dataclass(frozen=True)
class FetchFailure:
    url: str
    reason: FailureReason
    attempt: int
    status_code: Optional[int] = None
    detail: Optional[str] = None


FetchResult = Union[FetchSuccess, FetchFailure]


@dataclass(frozen=True)
class ExtractionSpec:
    """Declarative description of what to pull out of each fetched page.

    ``field`` renames the output key for text and attribute extraction;
    ``resolve_urls`` joins attribute values against the page URL so that
    relative hyperlinks come back absolute."""

    selector: str
    kind: ExtractionKind = ExtractionKind.TEXT
    attribute: Optional[str] = None
    field: Optional[str] = None
    resolve_urls: bool = False

    def __post_init__(self) -> None:
        if not self.selector or not self.selector.strip():
            raise ConfigurationError("selector is required")
        if self.kind == ExtractionKind.ATTRIBUTE and not self.attribute:
            raise ConfigurationError("attribute extraction requires an attribute name")

    @classmethod
    def text(cls, selector: str, field: Optional[str] = None) -> "ExtractionSpec":
        return cls(selector=selector, kind=ExtractionKind.TEXT, field=field)

    @classmethod
    def attr(
        cls,
        selector: str,
        name: str,
        field: Optional[str] = None,
        resolve_urls: bool = False,
    ) -> "ExtractionSpec":
        return cls(
            selector=selector,
            kind=ExtractionKind.ATTRIBUTE,
            attribute=name,
            field=field,
            resolve_urls=resolve_urls,
        )

    @classmethod
    def table(cls, selector: str = "table") -> "ExtractionSpec":
        return cls(selector=selector, kind=ExtractionKind.TABLE)

    @property
    def output_field(self) -> str:
        if self.field:
            return self.field
        if self.kind == ExtractionKind.ATTRIBUTE:
            return str(self.attribute)
        return "text"


@dataclass(frozen=True)
class ExtractedRecord:
    url: str
    fields: Dict[str, str]
    index: int = 0


@dataclass(frozen=True)
class ExtractionError:
    selector: str
    reason: FailureReason = FailureReason.NO_MATCH
    detail: Optional[str] = None


@dataclass(frozen=True)
class BatchFailure:
    url: str
    reason: FailureReason
    detail: Optional[str] = None
    attempts: int = 0
    index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["reason"] = self.reason.value
        return data


@dataclass
class BatchReport:
    """Combined outcome of one batch run.

    ``records`` and ``failures`` are appended from worker threads; every
    append goes through the report lock so both sequences stay consistent."""

    records: List[ExtractedRecord] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    cancelled: bool = False
    unprocessed: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_records(self, records: List[ExtractedRecord]) -> None:
        with self._lock:
            self.records.extend(records)

    def add_failure(self, failure: BatchFailure) -> None:
        with self._lock:
            self.failures.append(failure)

    def sort_by_input(self) -> None:
        with self._lock:
            # stable sort keeps row order within one page
            self.records.sort(key=lambda r: r.index)
            self.failures.sort(key=lambda f: f.index)

    def record_urls(self) -> List[str]:
        seen: Dict[int, str] = {}
        for rec in self.records:
            seen.setdefault(rec.index, rec.url)
        return list(seen.values())

    def failed_urls(self) -> List[str]:
        return [f.url for f in self.failures]

    def retryable_urls(self) -> List[str]:
        return [f.url for f in self.failures if f.reason.is_transient]

    def rows(self) -> List[Dict[str, str]]:
        """Flatten records into table rows carrying a ``source_url`` column."""
        return [{"source_url": rec.url, **rec.fields} for rec in self.records]

    def reason_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for f in self.failures:
            counts[f.reason.value] = counts.get(f.reason.value, 0) + 1
        return counts
