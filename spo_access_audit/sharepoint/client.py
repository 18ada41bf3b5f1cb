"""
SharePoint REST client with pagination, throttling, retry, and safety enforcement.
One client talks to one web (tenant root or a single site) at a time.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Iterator, Optional

import httpx

from ..config import (
    ODATA_ACCEPT,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    MAX_PAGES_PER_ENDPOINT,
    REQUEST_TIMEOUT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("spo_access_audit.sharepoint")

TokenProvider = Callable[[], str]


class SharePointAPIError(Exception):
    """Raised when SharePoint returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"SharePoint API Error {status_code} for {url}: {message}")


class SharePointClient:
    """
    Blocking SharePoint REST client bound to one web URL.
    Features:
      - Safety-validated requests (read-only enforcement)
      - Automatic pagination with odata.nextLink
      - Exponential backoff on 429/503/504
      - Fresh bearer token per request from the token provider
    """

    def __init__(
        self,
        web_url: str,
        token_provider: TokenProvider,
        guardian: SafetyGuardian,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.web_url = web_url.rstrip("/")
        self.token_provider = token_provider
        self.guardian = guardian
        self._transport = transport
        self._sleep = sleep
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.Client] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def open(self):
        self._client = httpx.Client(
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS),
            headers={
                "Accept": ODATA_ACCEPT,
                "Content-Type": ODATA_ACCEPT,
            },
            transport=self._transport,
        )

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def _build_url(self, endpoint: str) -> str:
        """Build full REST URL from an endpoint relative to /_api."""
        if endpoint.startswith("http"):
            return endpoint
        endpoint = endpoint.lstrip("/")
        return f"{self.web_url}/_api/{endpoint}"

    def get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """
        Execute a single GET request with retry/throttle handling.
        """
        url = self._build_url(endpoint)
        self.guardian.validate_request("GET", url)
        return self._execute_with_retry("GET", url, params=params)

    def post(self, endpoint: str, json_body: Optional[dict] = None,
             params: Optional[dict] = None) -> dict:
        """Execute a read-only POST (only endpoints the guardian allows)."""
        url = self._build_url(endpoint)
        self.guardian.validate_request("POST", url, json_body)
        return self._execute_with_retry("POST", url, params=params, json_body=json_body)

    def get_all_pages(self, endpoint: str, params: Optional[dict] = None) -> list[dict]:
        """
        Fetch all pages of a collection endpoint into a list.
        Use iter_pages() for large lists.
        """
        items = []
        for page in self.iter_pages(endpoint, params):
            items.extend(page)
        return items

    def iter_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        max_pages: int = MAX_PAGES_PER_ENDPOINT,
    ) -> Iterator[list[dict]]:
        """
        Yield a collection one page at a time, following odata.nextLink.
        Only one page is held in memory.
        """
        url = self._build_url(endpoint)
        pages = 0

        while url and pages < max_pages:
            self.guardian.validate_request("GET", url)
            data = self._execute_with_retry("GET", url, params=params)

            yield data.get("value", [])

            # nextLink carries all query parameters
            url = data.get("odata.nextLink") or data.get("@odata.nextLink")
            params = None
            pages += 1

        if url and pages >= max_pages:
            logger.warning(
                f"Pagination safety cap reached ({max_pages} pages) "
                f"for endpoint: {endpoint}"
            )

    def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        """Execute request with exponential backoff on throttling."""
        backoff = INITIAL_BACKOFF_SECONDS

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = self._execute_raw(
                    method, url, params=params, json_body=json_body
                )
                self._request_count += 1

                if response.status_code == 200:
                    if not response.content or not response.content.strip():
                        return {"value": []}
                    return response.json()

                if response.status_code == 204:
                    return {}

                if response.status_code in (429, 503, 504):
                    self._throttle_count += 1
                    if attempt == MAX_RETRIES:
                        break
                    retry_after = _retry_after(response.headers.get("Retry-After"), backoff)
                    wait_time = max(retry_after, backoff)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                    )
                    self._sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                raise SharePointAPIError(
                    response.status_code, _error_message(response), url
                )

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {url}, attempt {attempt + 1}/{MAX_RETRIES}")
                if attempt == MAX_RETRIES:
                    raise
                self._sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

            except httpx.ConnectError as e:
                logger.warning(f"Connection error on {url}: {e}")
                if attempt == MAX_RETRIES:
                    raise
                self._sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise SharePointAPIError(429, "Retries exhausted while throttled", url)

    def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> httpx.Response:
        """Execute raw HTTP request."""
        if not self._client:
            raise RuntimeError("SharePointClient not open. Use 'with' context.")

        headers = {"Authorization": f"Bearer {self.token_provider()}"}
        if method == "GET":
            return self._client.get(url, params=params, headers=headers)
        elif method == "POST":
            return self._client.post(url, json=json_body, params=params, headers=headers)
        else:
            raise SafetyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


def _error_message(response: httpx.Response) -> str:
    """Extract the OData error message, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("odata.error") or body.get("error") or {}
    message = error.get("message", "")
    if isinstance(message, dict):
        message = message.get("value", "")
    return message or response.text[:200]


def _retry_after(value: Optional[str], default: float) -> float:
    """Seconds to wait from a Retry-After header: delay-seconds or an HTTP-date."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)
