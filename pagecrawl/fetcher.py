from __future__ import annotations

import datetime as _dt
import logging
import time as _time
from typing import Any, Callable, Optional

import requests
from curl_cffi import CurlError
from curl_cffi.requests import exceptions as curl_exceptions

from .backoff import BackoffStrategy
from .metrics import AttemptEvent, MetricsCollector
from .models import FailureReason, FetchFailure, FetchRequest, FetchResult, FetchSuccess
from .rate_limiter import HostRateLimiter, host_key
from .transport import SessionFactory, SessionProvider

logger = logging.getLogger(__name__)

_TIMEOUT_ERRORS = (requests.exceptions.Timeout, curl_exceptions.Timeout, TimeoutError)
_TRANSPORT_ERRORS = (requests.exceptions.RequestException, CurlError, OSError)


def classify_status(status_code: int) -> Optional[FailureReason]:
    """Map an HTTP status to a failure reason; None means success."""
    if 200 <= status_code < 300:
        return None
    if status_code in (404, 410):
        return FailureReason.NOT_FOUND
    if status_code >= 500 or status_code == 429:
        return FailureReason.SERVER_ERROR
    return FailureReason.CLIENT_ERROR


def classify_exception(exc: BaseException) -> FailureReason:
    if isinstance(exc, _TIMEOUT_ERRORS):
        return FailureReason.TIMEOUT
    return FailureReason.CONNECTION_ERROR


class Fetcher:
    """Retrieves page content with per-host politeness and bounded retries.

    Failures never raise: every call returns either FetchSuccess or
    FetchFailure. Timeouts and server errors are retried with exponential
    backoff until ``max_attempts`` attempts have been made; everything
    else fails on the first attempt.
    """

    def __init__(
        self,
        session_provider: Optional[SessionProvider] = None,
        rate_limiter: Optional[HostRateLimiter] = None,
        backoff: Optional[BackoffStrategy] = None,
        max_attempts: int = 3,
        timeout: float = 20.0,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], None] = _time.sleep,
    ) -> None:
        self._session_provider = session_provider or SessionFactory()
        self._rate_limiter = rate_limiter or HostRateLimiter(delay=0.0)
        self._backoff = backoff or BackoffStrategy()
        self._max_attempts = max(1, int(max_attempts))
        self._timeout = timeout
        self._metrics = metrics
        self._sleep = sleep

    def fetch(self, request: FetchRequest, politeness: Optional[float] = None) -> FetchResult:
        current = request
        while True:
            attempt = current.attempt + 1
            result = self._attempt(current.url, attempt, politeness)
            if isinstance(result, FetchSuccess):
                return result
            if not result.reason.is_transient or attempt >= self._max_attempts:
                logger.debug("giving up url=%s reason=%s attempts=%d", result.url, result.reason.value, attempt)
                return result

            sleep_s = self._backoff.get_sleep(attempt, result.reason.value)
            logger.warning(
                "retrying url=%s reason=%s attempt=%d/%d sleep=%.2fs",
                current.url,
                result.reason.value,
                attempt,
                self._max_attempts,
                sleep_s,
            )
            self._sleep(sleep_s)
            current = current.next_attempt()

    def _attempt(self, url: str, attempt: int, politeness: Optional[float]) -> FetchResult:
        try:
            self._rate_limiter.acquire(url, politeness)
        except ValueError as exc:
            return FetchFailure(url=url, reason=FailureReason.CONNECTION_ERROR, attempt=attempt, detail=f"invalid URL: {exc}")
        session = self._session_provider()
        start = _time.time()
        try:
            response: Any = session.get(url, timeout=self._timeout)
        except _TRANSPORT_ERRORS as exc:
            reason = classify_exception(exc)
            self._record(url, attempt, None, reason, start)
            return FetchFailure(url=url, reason=reason, attempt=attempt, detail=f"{type(exc).__name__}: {exc}")

        status_code = int(response.status_code)
        reason = classify_status(status_code)
        self._record(url, attempt, status_code, reason, start)
        if reason is not None:
            return FetchFailure(
                url=url,
                reason=reason,
                attempt=attempt,
                status_code=status_code,
                detail=f"HTTP_{status_code}",
            )
        return FetchSuccess(
            url=url,
            content=response.text or "",
            fetched_at=_dt.datetime.now(_dt.timezone.utc),
            status_code=status_code,
            attempts=attempt,
        )

    def _record(
        self,
        url: str,
        attempt: int,
        status_code: Optional[int],
        reason: Optional[FailureReason],
        start: float,
    ) -> None:
        if not self._metrics:
            return
        self._metrics.record_attempt(
            AttemptEvent(
                url=url,
                host=host_key(url),
                attempt=attempt,
                status_code=status_code,
                reason=reason.value if reason else None,
                latency_ms=int((_time.time() - start) * 1000),
            )
        )
