"""Batch page fetcher with structured extraction.

Fetches a list of URLs with per-host politeness and bounded retries,
extracts text, attributes or table rows via CSS selectors, and returns a
single report of records plus per-URL failures.

Key modules:
    models          -- FetchRequest, FetchResult, ExtractionSpec, BatchReport
    fetcher         -- Fetcher with retry classification
    extractor       -- extract() over BeautifulSoup documents
    coordinator     -- BatchCoordinator and run_batch()
    policy          -- CrawlPolicy deny-list and robots.txt rules
    rate_limiter    -- HostRateLimiter for per-host politeness
    backoff         -- BackoffStrategy for exponential retry delays
    transport       -- SessionFactory for requests/curl_cffi sessions
    metrics         -- MetricsCollector for per-attempt statistics
    storage         -- JsonlStorage sink and CSV/JSONL report writers
    cli             -- command line entry point
"""

from .coordinator import BatchCoordinator, run_batch
from .extractor import extract, parse_document
from .fetcher import Fetcher
from .models import (
    BatchFailure,
    BatchReport,
    ConfigurationError,
    ExtractedRecord,
    ExtractionError,
    ExtractionKind,
    ExtractionSpec,
    FailureReason,
    FetchFailure,
    FetchRequest,
    FetchSuccess,
)
from .policy import CrawlPolicy

__all__ = [
    "BatchCoordinator",
    "BatchFailure",
    "BatchReport",
    "ConfigurationError",
    "CrawlPolicy",
    "ExtractedRecord",
    "ExtractionError",
    "ExtractionKind",
    "ExtractionSpec",
    "FailureReason",
    "FetchFailure",
    "FetchRequest",
    "FetchSuccess",
    "Fetcher",
    "extract",
    "parse_document",
    "run_batch",
]
