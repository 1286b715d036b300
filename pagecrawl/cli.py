from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional, Sequence

from .backoff import BackoffStrategy
from .config import Settings
from .coordinator import run_batch
from .logging_config import configure_logging
from .metrics import MetricsCollector
from .models import ConfigurationError, ExtractionKind, ExtractionSpec
from .policy import CrawlPolicy, load_robots
from .storage import JsonlStorage, write_failures, write_records
from .transport import RequestProfile, SessionFactory

logger = logging.getLogger(__name__)


def _load_text(path: Optional[str]) -> str:
    if not path:
        return ""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except FileNotFoundError:
        return ""


def _load_urls(path: str, limit: Optional[int] = None) -> List[str]:
    urls: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            urls.append(url)
            if limit and len(urls) >= limit:
                break
    return urls


def expand_values(raw: str) -> List[str]:
    """Expand "2015..2018" into each integer, or split a comma list."""
    raw = raw.strip()
    if ".." in raw:
        lo, hi = (int(p) for p in raw.split("..", 1))
        step = 1 if hi >= lo else -1
        return [str(v) for v in range(lo, hi + step, step)]
    return [v.strip() for v in raw.split(",") if v.strip()]


def expand_template(template: str, values: Sequence[str], base: str = "") -> List[str]:
    return [template.format(base=base.rstrip("/"), value=v) for v in values]


def build_spec(args: argparse.Namespace) -> ExtractionSpec:
    kind = ExtractionKind(args.kind)
    if kind == ExtractionKind.TABLE:
        return ExtractionSpec.table(args.selector or "table")
    if kind == ExtractionKind.ATTRIBUTE:
        return ExtractionSpec.attr(args.selector, args.attribute, field=args.field, resolve_urls=args.absolute)
    return ExtractionSpec.text(args.selector, field=args.field)


def build_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    s = settings or Settings()
    parser = argparse.ArgumentParser(prog="pagecrawl", description="Fetch pages in bulk and extract data with CSS selectors.")

    src = parser.add_argument_group("input")
    src.add_argument("urls", nargs="*", help="URLs to fetch")
    src.add_argument("--url-file", help="File with one URL per line (# comments allowed)")
    src.add_argument("--template", help='URL template, e.g. "{base}/leagues/NBA_{value}.html"')
    src.add_argument("--values", help='Template values: "a,b,c" or an integer range "2015..2020"')
    src.add_argument("--base", default="", help="Value substituted for {base} in --template")
    src.add_argument("--limit", type=int, default=None, help="Max number of URLs to load from --url-file")

    ext = parser.add_argument_group("extraction")
    ext.add_argument("--selector", default=None, help="CSS selector (default 'table' for --kind table)")
    ext.add_argument("--kind", choices=[k.value for k in ExtractionKind], default=ExtractionKind.TEXT.value)
    ext.add_argument("--attribute", help="Attribute name for --kind attribute, e.g. href")
    ext.add_argument("--field", help="Output field name for text/attribute values")
    ext.add_argument("--absolute", action="store_true", help="Resolve attribute values against the page URL")

    run = parser.add_argument_group("crawl")
    run.add_argument("--concurrency", type=int, default=s.CONCURRENCY, help="Worker pool size")
    run.add_argument("--politeness", type=float, default=s.POLITENESS, help="Min seconds between requests to one host")
    run.add_argument("--max-attempts", type=int, default=s.MAX_ATTEMPTS, help="Attempts per URL for timeouts/5xx")
    run.add_argument("--timeout", type=float, default=s.TIMEOUT, help="Per-request timeout in seconds")
    run.add_argument("--deny", action="append", default=[], help="Path pattern never to fetch (repeatable)")
    run.add_argument("--respect-robots", action="store_true", default=s.RESPECT_ROBOTS, help="Honour each host's robots.txt")
    run.add_argument("--impersonate", default=s.IMPERSONATE, help="Browser to impersonate via curl_cffi, e.g. chrome120")
    run.add_argument("--curl-config", help="File holding a curl command whose headers/cookies are reused")
    run.add_argument("--ordered", action="store_true", help="Sort output by input order")

    out = parser.add_argument_group("output")
    out.add_argument("--output", default="records.csv", help="Records file (.csv or .jsonl)")
    out.add_argument("--failures", default="failures.jsonl", help="Failure list (JSON Lines)")
    out.add_argument("--stream", help="Also stream every outcome to this JSONL file as it arrives")
    out.add_argument("--log-level", default=s.LOG_LEVEL)
    out.add_argument("--json-logs", action="store_true", default=s.LOG_JSON)
    return parser


def collect_urls(args: argparse.Namespace) -> List[str]:
    urls = list(args.urls)
    if args.url_file:
        urls.extend(_load_urls(args.url_file, limit=args.limit))
    if args.template:
        if not args.values:
            raise ConfigurationError("--template requires --values")
        urls.extend(expand_template(args.template, expand_values(args.values), base=args.base))
    if not urls:
        raise ConfigurationError("no URLs given")
    return urls


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = Settings()
    args = build_parser(settings).parse_args(argv)
    configure_logging(args.log_level, json=args.json_logs)

    try:
        urls = collect_urls(args)
        spec = build_spec(args)
    except (ConfigurationError, ValueError) as exc:
        logger.error("invalid arguments: %s", exc)
        return 2

    raw_curl = _load_text(args.curl_config)
    profile = RequestProfile.from_curl(raw_curl, args.impersonate) if raw_curl else RequestProfile(impersonate=args.impersonate)
    sessions = SessionFactory(profile, user_agent=settings.USER_AGENT)

    policy = CrawlPolicy(args.deny, user_agent=settings.USER_AGENT)
    if args.respect_robots:
        load_robots(policy, urls, session=sessions.create(), timeout=args.timeout)

    cancel = threading.Event()

    def _on_sigint(signum, frame) -> None:
        logger.warning("interrupt received; finishing in-flight pages")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    metrics = MetricsCollector()
    storage = JsonlStorage(args.stream) if args.stream else None
    try:
        report = run_batch(
            urls,
            spec,
            concurrency=args.concurrency,
            politeness=args.politeness,
            max_attempts=args.max_attempts,
            policy=policy,
            cancel_event=cancel,
            ordered=args.ordered,
            timeout=args.timeout,
            session_provider=sessions,
            backoff=BackoffStrategy(settings.BACKOFF_BASE, settings.BACKOFF_MAX),
            metrics=metrics,
            storage=storage,
        )
    except ConfigurationError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2
    finally:
        signal.signal(signal.SIGINT, previous)
        if storage:
            storage.close()

    rows = write_records(report, args.output)
    failed = write_failures(report, args.failures)
    snap = metrics.snapshot()
    print(
        f"DONE: urls={len(urls)} rows={rows} failed={failed} unprocessed={len(report.unprocessed)} "
        f"attempts={snap.total_attempts} retries={snap.retry_count} avg_latency_ms={snap.avg_latency_ms:.0f}"
    )
    return 0 if not report.failures and not report.unprocessed else 1
