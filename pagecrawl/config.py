from __future__ import annotations

import os
from typing import Optional

from .transport import DEFAULT_USER_AGENT


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    """Environment-driven defaults; CLI flags override these."""

    def __init__(self) -> None:
        # Batch
        self.CONCURRENCY: int = int(os.getenv("PAGECRAWL_CONCURRENCY", "3"))
        self.POLITENESS: float = float(os.getenv("PAGECRAWL_POLITENESS", "1.0"))
        self.MAX_ATTEMPTS: int = int(os.getenv("PAGECRAWL_MAX_ATTEMPTS", "3"))
        self.TIMEOUT: float = float(os.getenv("PAGECRAWL_TIMEOUT", "20"))

        # Retry backoff
        self.BACKOFF_BASE: float = float(os.getenv("PAGECRAWL_BACKOFF_BASE", "0.5"))
        self.BACKOFF_MAX: float = float(os.getenv("PAGECRAWL_BACKOFF_MAX", "10"))

        # HTTP
        self.USER_AGENT: str = os.getenv("PAGECRAWL_USER_AGENT", DEFAULT_USER_AGENT)
        self.IMPERSONATE: Optional[str] = os.getenv("PAGECRAWL_IMPERSONATE") or None
        self.RESPECT_ROBOTS: bool = _env_bool("PAGECRAWL_RESPECT_ROBOTS")

        # Logging
        self.LOG_LEVEL: str = os.getenv("PAGECRAWL_LOG_LEVEL", "INFO")
        self.LOG_JSON: bool = _env_bool("PAGECRAWL_LOG_JSON")

