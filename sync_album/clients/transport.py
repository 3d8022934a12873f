"""HTTP transport – shared cookie-jar session with request jitter and 429 backoff."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_TIMEOUT = 60  # seconds, per call
MAX_RETRIES = 5
RETRY_BASE_DELAY = 5.0  # seconds; multiplied by the attempt number
JITTER_RANGE = (0.5, 1.5)  # seconds
POOL_SIZE = 32


def _retry_after(resp: requests.Response) -> float | None:
    """Return the server's Retry-After hint in seconds, if it is numeric."""
    value = resp.headers.get("Retry-After", "").strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class HttpTransport:
    """Browser-like HTTP client used by the album scraper and media downloader.

    One instance is built by the entry point and handed to every component
    that talks to the photo source, so the cookie jar (session affinity set by
    the first page load) and the connection pool are shared process-wide.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff: float = RETRY_BASE_DELAY,
        jitter: tuple[float, float] = JITTER_RANGE,
        sleep: Callable[[float], None] = time.sleep,
        pool_size: int = POOL_SIZE,
    ):
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        session.headers.update(DEFAULT_HEADERS)
        self._session = session
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        self._jitter = jitter
        self._sleep = sleep

    # ── public API ───────────────────────────────────────────────────

    def get(self, url: str) -> requests.Response:
        self._pause()
        return self._send("GET", url)

    def head(self, url: str) -> requests.Response:
        """Lightweight probe; no jitter so content-type checks stay cheap."""
        return self._send("HEAD", url)

    def post(self, url: str, content_type: str, body: str | bytes) -> requests.Response:
        self._pause()
        return self._send("POST", url, data=body, headers={"Content-Type": content_type})

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── internals ────────────────────────────────────────────────────

    def _pause(self) -> None:
        low, high = self._jitter
        if high > 0:
            self._sleep(random.uniform(low, high))

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        resp: requests.Response | None = None
        for attempt in range(1, self._max_retries + 1):
            resp = self._session.request(
                method, url, timeout=self._timeout, allow_redirects=True, **kwargs
            )
            if resp.status_code != 429:
                return resp

            if attempt == self._max_retries:
                break

            resp.close()
            wait = _retry_after(resp)
            if wait is None:
                wait = self._backoff * attempt
            logger.warning(
                "Rate limited (429) on %s %s – retrying in %.0f s (attempt %d/%d)",
                method, url, wait, attempt, self._max_retries,
            )
            self._sleep(wait)

        logger.warning("Still rate limited after %d attempts: %s", self._max_retries, url)
        return resp  # type: ignore[return-value]
