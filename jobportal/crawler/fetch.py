from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar
from urllib.parse import quote, urlencode

import requests
from requests.exceptions import ChunkedEncodingError, InvalidSchema, InvalidURL, MissingSchema

from jobportal.config import DEFAULT_USER_AGENT
from jobportal.core.errors import FetchError

log = logging.getLogger(__name__)

SITE_ROOT = "https://www.saramin.co.kr"
SEARCH_URL = f"{SITE_ROOT}/zf_user/search/recruit"

T = TypeVar("T")


def search_url(keyword: str, page: int, base: str = SEARCH_URL) -> str:
    """Search-results URL for a keyword and a 1-based page number."""
    if page < 1:
        raise ValueError("page numbers start at 1")
    query = urlencode(
        {"searchType": "search", "searchword": keyword, "recruitPage": page},
        quote_via=quote,
    )
    return f"{base}?{query}"


def linear_backoff(retry_number: int) -> float:
    # 1s before the first retry, 2s before the second, ...
    return float(retry_number)


def is_transient_error(exc: BaseException) -> bool:
    """Network failures, 5xx and 429 are worth another try; nothing else is."""
    if isinstance(exc, (MissingSchema, InvalidSchema, InvalidURL)):
        return False
    if isinstance(exc, (requests.ConnectionError, requests.Timeout, ChunkedEncodingError)):
        return True
    if isinstance(exc, requests.HTTPError):
        resp = exc.response
        if resp is None:
            return False
        return resp.status_code >= 500 or resp.status_code == 429
    return False


@dataclass
class RetryPolicy:
    """Bounded retry around any callable.

    `max_retries` counts retries after the first attempt, so a call runs at
    most `max_retries + 1` times.
    """
    max_retries: int = 3
    backoff: Callable[[int], float] = linear_backoff
    is_retryable: Callable[[BaseException], bool] = is_transient_error
    sleep: Callable[[float], None] = time.sleep

    def call(self, fn: Callable[[], T], *, label: str = "") -> T:
        retry = 0
        while True:
            try:
                return fn()
            except Exception as exc:
                if retry >= self.max_retries or not self.is_retryable(exc):
                    raise
                retry += 1
                wait = self.backoff(retry)
                log.warning(
                    "Retry %d/%d for %s in %.1fs (%s)",
                    retry, self.max_retries, label or "call", wait, exc,
                )
                self.sleep(wait)


class Fetcher:
    """Fetches search-result pages as HTML text."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retry: Optional[RetryPolicy] = None,
        search_base: str = SEARCH_URL,
    ):
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.retry = retry if retry is not None else RetryPolicy()
        self.search_base = search_base
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8",
        }

    def get(self, url: str) -> str:
        """Return the response body or raise FetchError."""
        attempts = 0

        def _once() -> str:
            nonlocal attempts
            attempts += 1
            log.debug("GET %s (attempt %d)", url, attempts)
            resp = self.session.get(url, headers=self.headers, timeout=self.timeout)
            resp.raise_for_status()
            return resp.text or ""

        try:
            return self.retry.call(_once, label=url)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(url, f"HTTP {status}", status=status, attempts=attempts) from exc
        except requests.RequestException as exc:
            raise FetchError(url, str(exc) or type(exc).__name__, attempts=attempts) from exc

    def fetch_page(self, keyword: str, page: int) -> str:
        return self.get(search_url(keyword, page, self.search_base))

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
