"""
HTTP client used to fetch player scripts and service-worker data.

Retry policy:
- Retries on network errors: TimeoutException, ConnectError, ReadError,
  WriteError, PoolTimeout, ConnectTimeout.
- Retries on server errors: HTTP 429 (rate-limit), 500, 502, 503, 504.
- Exponential back-off with jitter, capped at 30 s per wait.
- Respects Retry-After header on 429 responses.
- Does NOT retry on 4xx client errors (except 429).

fetch() never raises: any failure is logged and reported as None. The
request itself runs on the background pool (see threads.py). Calling fetch()
from the main thread is flagged before the work is handed to the pool.
"""

import logging
import random
import time

import httpx

from ..config import get_settings
from ..models.enums import ClientVariant
from .threads import run_on_background_thread, verify_off_main_thread

logger = logging.getLogger(__name__)

# Maximum back-off wait time (seconds) between retries
_MAX_BACKOFF = 30.0

# HTTP status codes that trigger an automatic retry
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

ACCEPT_LANGUAGE = "en-US,en"

# Sent byte-for-byte; the upstream service keys player variants on them.
USER_AGENTS = {
    ClientVariant.MOBILE_WEB: "Mozilla/5.0 (Android 16; Mobile; rv:140.0) Gecko/140.0 Firefox/140.0",
    ClientVariant.TV: "Mozilla/5.0 (compatible; MSIE 9.0; Windows NT 6.1; Trident/5.0; Xbox)",
}


def get_headers(variant: ClientVariant) -> dict[str, str]:
    return {
        "Accept-Language": ACCEPT_LANGUAGE,
        "User-Agent": USER_AGENTS[variant],
    }


# All httpx exception types that represent transient network problems
_NETWORK_ERRORS = (
    httpx.TimeoutException,  # base for all timeout variants
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.PoolTimeout,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.CloseError,
)


class HTTPClient:
    """
    Blocking HTTP client with retry logic and per-variant headers.
    Wraps httpx.Client.
    """

    def __init__(
        self,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.request_timeout
        self._connect_timeout = connect_timeout or settings.connect_timeout
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._transport = transport
        self._client: httpx.Client | None = None

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(
                    self._timeout,
                    connect=self._connect_timeout,
                    read=self._timeout,
                    write=10.0,
                    pool=10.0,
                ),
                follow_redirects=True,
                transport=self._transport,
                limits=httpx.Limits(
                    max_connections=20,
                    max_keepalive_connections=10,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    def close(self):
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(self, url: str, variant: ClientVariant) -> str | None:
        """GET *url* with the variant's headers; the body text, or None on any failure."""
        verify_off_main_thread()
        try:
            return run_on_background_thread(self._fetch_url, url, variant)
        except Exception as e:
            logger.debug("Could not fetch url: %s (%s)", url, e)
            return None

    def _fetch_url(self, url: str, variant: ClientVariant) -> str | None:
        start = time.monotonic()
        logger.debug("Fetching url: %s (%s)", url, variant.value)
        try:
            response = self.request("GET", url, headers=get_headers(variant))
            if response.is_success:
                return response.text
            logger.debug(
                "API not available with response code: %d message: %s",
                response.status_code,
                response.reason_phrase,
            )
        except httpx.TimeoutException as e:
            logger.debug("Connection timeout: %s", e)
        except httpx.HTTPError as e:
            logger.debug("Network error: %s", e)
        finally:
            logger.debug(
                "Fetched url: %s took: %dms", url, (time.monotonic() - start) * 1000
            )
        return None

    # ------------------------------------------------------------------
    # Core request with retry
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Make an HTTP request with automatic retries on transient failures.

        Back-off: exponential (2^attempt) + random jitter, capped at 30 s.
        On 429, the Retry-After header is respected if present.
        """
        client = self._get_client()
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = client.request(method, url, headers=headers)

                # ---- check for retryable HTTP status ----
                if response.status_code in _RETRYABLE_STATUS_CODES:
                    if attempt < self._max_retries:
                        wait = self._backoff(attempt, response)
                        logger.warning(
                            "HTTP %d from %s %s (attempt %d/%d). Retrying in %.1fs...",
                            response.status_code,
                            method,
                            url,
                            attempt + 1,
                            self._max_retries + 1,
                            wait,
                        )
                        time.sleep(wait)
                        continue
                    else:
                        logger.error(
                            "HTTP %d from %s %s after %d attempts, giving up.",
                            response.status_code,
                            method,
                            url,
                            self._max_retries + 1,
                        )

                return response

            except _NETWORK_ERRORS as exc:
                last_error = exc
                if attempt < self._max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(
                        "%s on %s %s (attempt %d/%d). Retrying in %.1fs...",
                        type(exc).__name__,
                        method,
                        url,
                        attempt + 1,
                        self._max_retries + 1,
                        wait,
                    )
                    time.sleep(wait)
                else:
                    logger.error(
                        "%s on %s %s after %d attempts: %s",
                        type(exc).__name__,
                        method,
                        url,
                        self._max_retries + 1,
                        exc,
                    )

        if last_error is not None:
            raise last_error
        raise httpx.ReadError("All retries exhausted with no response")

    # ------------------------------------------------------------------
    # Back-off calculation
    # ------------------------------------------------------------------

    @staticmethod
    def _backoff(
        attempt: int,
        response: httpx.Response | None = None,
    ) -> float:
        """
        Compute wait time with exponential back-off + jitter, capped.

        If *response* is a 429 with a Retry-After header, that value is
        used as a floor.
        """
        base = min((2**attempt) + random.uniform(0, 1), _MAX_BACKOFF)

        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    ra = float(retry_after)
                    base = max(base, min(ra, _MAX_BACKOFF))
                except ValueError:
                    pass

        return base

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
