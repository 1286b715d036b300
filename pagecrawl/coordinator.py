from __future__ import annotations

import json
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Union

import soupsieve

from .backoff import BackoffStrategy
from .extractor import DEFAULT_PARSER, extract
from .fetcher import Fetcher
from .metrics import MetricsCollector
from .models import (
    BatchFailure,
    BatchReport,
    ConfigurationError,
    ExtractedRecord,
    ExtractionError,
    ExtractionSpec,
    FailureReason,
    FetchFailure,
    FetchRequest,
)
from .policy import CrawlPolicy
from .rate_limiter import HostRateLimiter
from .storage import StorageBase
from .transport import SessionProvider

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """Runs fetch + extract over a URL list with a fixed-size worker pool.

    Each worker pulls the next (index, url) pair from a shared queue, so at
    most ``concurrency`` URLs are in flight. Every URL ends with exactly one
    terminal outcome in the report; one URL failing never stops the others.
    Setting ``cancel_event`` lets in-flight URLs finish and leaves the rest
    in ``report.unprocessed``.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        policy: Optional[CrawlPolicy] = None,
        storage: Optional[StorageBase] = None,
        parser: str = DEFAULT_PARSER,
    ) -> None:
        self._fetcher = fetcher
        self._policy = policy
        self._storage = storage
        self._parser = parser

        self._last_peak = 0

    @property
    def peak_in_flight(self) -> int:
        """Highest number of URLs processed at once during the latest run."""
        return self._last_peak

    def run(
        self,
        urls: Sequence[str],
        spec: ExtractionSpec,
        concurrency: int = 1,
        cancel_event: Optional[threading.Event] = None,
        ordered: bool = False,
    ) -> BatchReport:
        _validate(spec, concurrency)
        cancel = cancel_event or threading.Event()
        report = BatchReport()
        work: "queue.Queue[tuple[int, str]]" = queue.Queue()
        in_flight = _InFlight()

        for index, url in enumerate(urls):
            try:
                reason = self._policy.exclusion_reason(url) if self._policy else None
            except ValueError as exc:
                self._fail(
                    report,
                    BatchFailure(url=url, reason=FailureReason.CONNECTION_ERROR, detail=f"invalid URL: {exc}", index=index),
                )
                continue
            if reason is not None:
                self._fail(report, BatchFailure(url=url, reason=FailureReason.POLICY_EXCLUDED, detail=reason, index=index))
                continue
            work.put((index, url))

        start = time.time()
        logger.info("batch started urls=%d queued=%d concurrency=%d", len(urls), work.qsize(), concurrency)

        workers = min(concurrency, work.qsize())
        if workers:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pagecrawl") as pool:
                futures = [pool.submit(self._worker, work, spec, report, cancel, in_flight) for _ in range(workers)]
                for fut in futures:
                    fut.result()

        if cancel.is_set():
            report.cancelled = True
            while True:
                try:
                    _, url = work.get_nowait()
                except queue.Empty:
                    break
                report.unprocessed.append(url)

        if ordered:
            report.sort_by_input()
        self._last_peak = in_flight.peak

        summary = {
            "urls": len(urls),
            "records": len(report.records),
            "record_urls": len(report.record_urls()),
            "failures": len(report.failures),
            "reasons": report.reason_counts(),
            "cancelled": report.cancelled,
            "unprocessed": len(report.unprocessed),
            "peak_in_flight": in_flight.peak,
            "elapsed_s": round(time.time() - start, 3),
        }
        logger.info("batch finished %s", json.dumps(summary, ensure_ascii=False))
        return report

    def _worker(
        self,
        work: "queue.Queue[tuple[int, str]]",
        spec: ExtractionSpec,
        report: BatchReport,
        cancel: threading.Event,
        in_flight: "_InFlight",
    ) -> None:
        while not cancel.is_set():
            try:
                index, url = work.get_nowait()
            except queue.Empty:
                return
            in_flight.enter()
            try:
                self._process(index, url, spec, report)
            finally:
                in_flight.leave()

    def _process(self, index: int, url: str, spec: ExtractionSpec, report: BatchReport) -> None:
        attempts = 0
        try:
            result = self._fetcher.fetch(FetchRequest(url=url))
            if isinstance(result, FetchFailure):
                self._fail(
                    report,
                    BatchFailure(url=url, reason=result.reason, detail=result.detail, attempts=result.attempt, index=index),
                )
                return

            attempts = result.attempts
            outcome = extract(result.content, spec, url=url, index=index, parser=self._parser)
        except Exception as exc:  # noqa: BLE001
            logger.exception("unexpected error url=%s", url)
            self._fail(
                report,
                BatchFailure(
                    url=url,
                    reason=FailureReason.INTERNAL_ERROR,
                    detail=f"{type(exc).__name__}: {exc}",
                    attempts=attempts,
                    index=index,
                ),
            )
            return

        if isinstance(outcome, ExtractionError):
            self._fail(report, BatchFailure(url=url, reason=outcome.reason, detail=outcome.detail, attempts=attempts, index=index))
        elif not outcome:
            self._fail(
                report,
                BatchFailure(
                    url=url,
                    reason=FailureReason.EMPTY_RESULT,
                    detail=f"{spec.selector!r} matched but produced no records",
                    attempts=attempts,
                    index=index,
                ),
            )
        else:
            self._succeed(report, outcome)

    def _succeed(self, report: BatchReport, records: list[ExtractedRecord]) -> None:
        report.add_records(records)
        logger.debug("extracted url=%s records=%d", records[0].url, len(records))
        for rec in records:
            self._store(rec)

    def _fail(self, report: BatchReport, failure: BatchFailure) -> None:
        report.add_failure(failure)
        logger.warning("failed url=%s reason=%s detail=%s", failure.url, failure.reason.value, failure.detail)
        self._store(failure)

    def _store(self, item: Union[ExtractedRecord, BatchFailure]) -> None:
        # the report is authoritative; sink errors never reach the worker
        if not self._storage:
            return
        try:
            self._storage.write(item)
        except Exception:  # noqa: BLE001
            logger.exception("storage write failed url=%s", item.url)


class _InFlight:
    """Counts URLs being processed by one run and remembers the peak."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active = 0
        self.peak = 0

    def enter(self) -> None:
        with self._lock:
            self._active += 1
            self.peak = max(self.peak, self._active)

    def leave(self) -> None:
        with self._lock:
            self._active -= 1


def _validate(spec: ExtractionSpec, concurrency: int) -> None:
    if not isinstance(spec, ExtractionSpec):
        raise ConfigurationError("spec must be an ExtractionSpec")
    try:
        soupsieve.compile(spec.selector)
    except soupsieve.SelectorSyntaxError as exc:
        raise ConfigurationError(f"invalid selector {spec.selector!r}: {exc}") from exc
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ConfigurationError(f"concurrency must be an integer >= 1, got {concurrency!r}")


def run_batch(
    urls: Sequence[str],
    spec: ExtractionSpec,
    concurrency: int = 1,
    politeness: float = 1.0,
    max_attempts: int = 3,
    *,
    policy: Optional[CrawlPolicy] = None,
    cancel_event: Optional[threading.Event] = None,
    ordered: bool = False,
    timeout: float = 20.0,
    session_provider: Optional[SessionProvider] = None,
    backoff: Optional[BackoffStrategy] = None,
    metrics: Optional[MetricsCollector] = None,
    storage: Optional[StorageBase] = None,
) -> BatchReport:
    """Fetch and extract every URL, returning records plus a failure list.

    Only configuration errors raise (ConfigurationError, before any request
    is made); every per-URL problem is reported in ``report.failures``."""
    _validate(spec, concurrency)
    if not isinstance(max_attempts, int) or max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be an integer >= 1, got {max_attempts!r}")
    if politeness < 0:
        raise ConfigurationError(f"politeness must be >= 0, got {politeness!r}")

    fetcher = Fetcher(
        session_provider=session_provider,
        rate_limiter=HostRateLimiter(delay=politeness),
        backoff=backoff,
        max_attempts=max_attempts,
        timeout=timeout,
        metrics=metrics,
    )
    coordinator = BatchCoordinator(fetcher, policy=policy, storage=storage)
    return coordinator.run(urls, spec, concurrency=concurrency, cancel_event=cancel_event, ordered=ordered)
