import asyncio
import functools
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..base.config import TradingConfig
from ..base.errors import (
    AuthenticationError,
    ExchangeError,
    MarketNotFound,
    NetworkError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


class HttpGateway:
    """
    Blocking HTTP transport shared by the CLOB, relayer and data API clients.

    Status codes map onto the package error hierarchy. Async callers go through
    _arequest, which runs the blocking call in a worker thread.
    """

    def __init__(self, host: str, config: TradingConfig):
        self.host = host.rstrip("/")
        self.config = config
        self.timeout = config.timeout
        self.max_retries = config.max_retries
        self.retry_delay = config.retry_delay

    def _retry_on_failure(self, func: Callable) -> Callable:
        """Retry transient failures (network, rate limit) with linear backoff."""

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_error = None
            for attempt in range(self.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except (NetworkError, RateLimitError) as e:
                    last_error = e
                    if attempt < self.max_retries:
                        delay = self.retry_delay * (attempt + 1)
                        logger.debug(f"Attempt {attempt + 1} failed: {e}. Retrying in {delay}s")
                        time.sleep(delay)
            raise last_error

        return wrapper

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        host: Optional[str] = None,
        retry: bool = True,
        allow_error_body: bool = False,
    ) -> Any:
        """
        Make an HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Request path, appended to host
            params: Query parameters
            body: Pre-serialized JSON body (sent byte-for-byte as signed)
            headers: Extra headers
            host: Override the gateway host for this call
            retry: Retry transient failures. Never set for signed order posts.
            allow_error_body: Return a 4xx JSON error body instead of raising

        Returns:
            Decoded JSON, or None for an empty body
        """

        def _make_request():
            url = f"{(host or self.host).rstrip('/')}{path}"
            request_headers = {"Content-Type": "application/json"}
            request_headers.update(headers or {})

            try:
                response = requests.request(
                    method,
                    url,
                    params=params,
                    data=body,
                    headers=request_headers,
                    timeout=self.timeout,
                )
            except requests.Timeout as e:
                raise NetworkError(f"Request timeout: {e}")
            except requests.ConnectionError as e:
                raise NetworkError(f"Connection error: {e}")
            except requests.RequestException as e:
                raise ExchangeError(f"Request failed: {e}")

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After", "1")
                raise RateLimitError(f"Rate limited. Retry after {retry_after}s")

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    f"Authentication failed ({response.status_code}): {_error_detail(response)}"
                )

            if response.status_code == 404:
                raise MarketNotFound(f"Resource not found: {path}")

            if allow_error_body and 400 <= response.status_code < 500:
                detail = _json_or_none(response)
                if isinstance(detail, dict):
                    return detail

            try:
                response.raise_for_status()
            except requests.HTTPError as e:
                raise ExchangeError(f"HTTP error: {e} - {_error_detail(response)}")

            if not response.content:
                return None
            return _json_or_none(response)

        logger.debug(f"{method} {path}")
        if retry:
            return self._retry_on_failure(_make_request)()
        return _make_request()

    async def _arequest(self, method: str, path: str, **kwargs) -> Any:
        return await asyncio.to_thread(self._request, method, path, **kwargs)


def _json_or_none(response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_detail(response) -> str:
    detail = _json_or_none(response)
    if isinstance(detail, dict):
        return str(detail.get("error") or detail.get("errorMsg") or detail.get("message") or detail)
    text = getattr(response, "text", "") or ""
    return text[:500]
