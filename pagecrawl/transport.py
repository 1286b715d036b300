from __future__ import annotations

import shlex as _shlex
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from curl_cffi import requests as curl_requests

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/127.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class RequestProfile:
    """Headers and cookies sent with every page request."""

    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    impersonate: Optional[str] = None

    @classmethod
    def from_curl(cls, curl_cmd: str, impersonate: Optional[str] = None) -> "RequestProfile":
        """Build a profile from a curl command copied out of browser dev tools."""
        headers, cookies = parse_curl_headers(curl_cmd)
        return cls(headers=headers, cookies=cookies, impersonate=impersonate)


class SessionFactory:
    """Creates HTTP sessions for the fetcher, one per worker thread.

    Plain requests sessions are used unless ``impersonate`` is set, in which
    case a curl_cffi session mimics the named browser's TLS fingerprint."""

    def __init__(self, profile: Optional[RequestProfile] = None, user_agent: str = DEFAULT_USER_AGENT) -> None:
        self._profile = profile or RequestProfile()
        self._user_agent = user_agent
        self._local = threading.local()

    def create(self) -> Any:
        headers = {"User-Agent": self._user_agent, **self._profile.headers}
        if self._profile.impersonate:
            # curl_cffi sets its own browser User-Agent unless one is given
            if "User-Agent" not in self._profile.headers:
                headers.pop("User-Agent")
            return curl_requests.Session(
                headers=headers,
                cookies=dict(self._profile.cookies),
                impersonate=self._profile.impersonate,
            )
        session = requests.Session()
        session.headers.update(headers)
        session.cookies.update(self._profile.cookies)
        return session

    def for_current_thread(self) -> Any:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self.create()
        return session

    def __call__(self) -> Any:
        return self.for_current_thread()


SessionProvider = Callable[[], Any]


def _parse_cookie_str(raw: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for pair in raw.split(";"):
        part = pair.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        cookies[k.strip()] = v.strip()
    return cookies


def parse_curl_headers(curl_cmd: str) -> tuple[dict[str, str], dict[str, str]]:
    """Pull request headers and cookies out of a curl command line.

    Only ``-H``/``--header`` and ``-b``/``--cookie`` are honoured; method,
    body and URL are ignored since every page is fetched with GET."""
    tokens = _shlex.split(curl_cmd, posix=True)
    if not tokens or tokens[0] != "curl":
        raise ValueError("curl command must start with 'curl'.")

    headers: dict[str, str] = {}
    cookies: dict[str, str] = {}

    i = 1
    while i < len(tokens):
        t = tokens[i]
        if t in ("-H", "--header") and i + 1 < len(tokens):
            hv = tokens[i + 1]
            if ":" in hv:
                k, v = hv.split(":", 1)
                if k.strip().lower() == "cookie":
                    cookies.update(_parse_cookie_str(v.strip()))
                else:
                    headers[k.strip()] = v.strip()
            i += 2
            continue
        if t in ("-b", "--cookie") and i + 1 < len(tokens):
            cookies.update(_parse_cookie_str(tokens[i + 1].strip()))
            i += 2
            continue
        i += 1

    return headers, cookies
