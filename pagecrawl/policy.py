from __future__ import annotations

import fnmatch
import logging
import urllib.robotparser as urp
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

import requests
from curl_cffi import CurlError

from .rate_limiter import host_key

logger = logging.getLogger(__name__)

_GLOB_CHARS = ("*", "?", "[")


def _path_of(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


class CrawlPolicy:
    """Decides which URLs may be fetched at all.

    Deny patterns containing glob characters are matched against the URL
    path (plus query); other patterns are path prefixes. Optional per-host
    robots.txt rules are checked for ``user_agent`` as well.
    """

    def __init__(
        self,
        deny_patterns: Iterable[str] = (),
        robots: Optional[Dict[str, urp.RobotFileParser]] = None,
        user_agent: str = "*",
    ) -> None:
        self._deny: Tuple[str, ...] = tuple(p.strip() for p in deny_patterns if p and p.strip())
        self._robots: Dict[str, urp.RobotFileParser] = dict(robots or {})
        self._ua = user_agent

    @property
    def deny_patterns(self) -> Tuple[str, ...]:
        return self._deny

    def add_robots(self, host: str, robots_txt: str) -> None:
        parser = urp.RobotFileParser()
        parser.parse(robots_txt.splitlines())
        self._robots[host.lower()] = parser

    def exclusion_reason(self, url: str) -> Optional[str]:
        """Return why url is excluded, or None if it may be fetched."""
        path = _path_of(url)
        for pattern in self._deny:
            if any(ch in pattern for ch in _GLOB_CHARS):
                if fnmatch.fnmatchcase(path, pattern):
                    return f"matches deny pattern {pattern!r}"
            elif path.startswith(pattern):
                return f"matches deny prefix {pattern!r}"
        parser = self._robots.get(host_key(url))
        if parser is not None and not parser.can_fetch(self._ua, url):
            return "disallowed by robots.txt"
        return None

    def is_excluded(self, url: str) -> bool:
        return self.exclusion_reason(url) is not None


def load_robots(
    policy: CrawlPolicy,
    urls: Iterable[str],
    session: Optional[Any] = None,
    timeout: float = 10.0,
) -> CrawlPolicy:
    """Fetch robots.txt once per distinct host and add its rules to policy.

    A missing robots.txt means everything is allowed; a fetch error is
    logged and the host is left without rules."""
    session = session or requests.Session()
    seen = set()
    for url in urls:
        try:
            parts = urlsplit(url)
            host = host_key(url)
        except ValueError:
            logger.warning("skipping robots.txt for invalid url=%s", url)
            continue
        if not host or host in seen:
            continue
        seen.add(host)
        robots_url = f"{parts.scheme or 'https'}://{parts.netloc}/robots.txt"
        try:
            resp = session.get(robots_url, timeout=timeout)
        except (requests.exceptions.RequestException, CurlError, OSError) as exc:
            logger.warning("robots.txt fetch failed host=%s error=%s", host, type(exc).__name__)
            continue
        text = resp.text if resp.status_code == 200 and resp.text else ""
        policy.add_robots(host, text)
        logger.debug("loaded robots.txt host=%s status=%s", host, resp.status_code)
    return policy
