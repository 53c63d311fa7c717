"""
Base HTTP client for the REST surfaces a feed depends on.

Pooled requests session, orjson bodies, exceptions mapped from status codes,
and RetryStrategy around every call that opts in.
"""

import itertools
import orjson
import requests
from requests.adapters import HTTPAdapter
from typing import Optional, Any
from urllib.parse import urljoin
import logging

from ..config import FeedSettings
from ..exceptions import (
    APIError,
    TimeoutError,
    RateLimitError,
    AuthenticationError,
    ValidationError
)
from ..utils.retry import RetryStrategy, CircuitBreaker

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "Connection": "keep-alive",
}


def _error_for_response(response: requests.Response, method: str, path: str) -> Exception:
    """Exception matching a >= 400 response."""
    status = response.status_code
    try:
        body = orjson.loads(response.content)
        detail = str(body)
    except orjson.JSONDecodeError:
        body = None
        detail = response.text[:200]
    message = f"{method} {path} failed with {status}: {detail}"

    if status in (401, 403):
        return AuthenticationError(message)
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        try:
            seconds = float(retry_after) if retry_after else None
        except ValueError:
            # HTTP-date form
            seconds = None
        return RateLimitError(message, endpoint=path, retry_after=seconds)
    return APIError(message, status_code=status, response=body)


class BaseAPIClient:
    """
    Shared transport for GammaAPI and CLOBAPI.

    Thread-safe: the session's connection pool is shared between threads.
    """

    def __init__(
        self,
        base_url: str,
        settings: FeedSettings,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize base API client.

        Args:
            base_url: API base URL
            settings: Client settings
            circuit_breaker: Optional circuit breaker shared across clients
        """
        self.base_url = base_url
        self.settings = settings
        self.circuit_breaker = circuit_breaker

        self.retry_strategy = RetryStrategy(
            max_retries=settings.max_retries,
            max_delay=settings.retry_backoff_max,
            exponential_base=settings.retry_backoff_base,
            circuit_breaker=circuit_breaker
        )

        # Retries happen in RetryStrategy, never inside urllib3
        adapter = HTTPAdapter(
            pool_connections=settings.pool_connections,
            pool_maxsize=settings.pool_maxsize,
            max_retries=0,
            pool_block=False
        )
        self.session = requests.Session()
        for prefix in ("https://", "http://"):
            self.session.mount(prefix, adapter)
        self.session.headers.update(DEFAULT_HEADERS)

        self.timeout = (settings.connect_timeout, settings.request_timeout)
        self._request_ids = itertools.count(1)

    def _make_request(
        self,
        method: str,
        path: str,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        json_data: Optional[dict[str, Any]] = None
    ) -> Any:
        """
        Send one request and decode the JSON body.

        Raises:
            AuthenticationError: 401/403
            RateLimitError: 429
            APIError: Other error statuses, transport failures, non-JSON body
            ValidationError: Malformed request URL
            TimeoutError: Connect or read timeout
        """
        url = urljoin(self.base_url, path)
        request_id = f"{method}:{path}:{next(self._request_ids)}"
        if self.settings.log_requests:
            logger.debug(f"[{request_id}] {method} {url} params={params}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_data,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"[{request_id}] timed out")
            raise TimeoutError(f"Request timeout: {e}") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"[{request_id}] connection failed")
            raise APIError(f"Connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"[{request_id}] request failed: {type(e).__name__}")
            # MissingSchema, InvalidURL and friends: retrying cannot help
            if isinstance(e, ValueError):
                raise ValidationError(f"Invalid request: {e}") from e
            raise APIError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise _error_for_response(response, method, path)

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            logger.error(f"[{request_id}] invalid JSON: {response.text[:200]}")
            raise APIError(f"Invalid JSON response: {e}") from e

    def _send(self, retry: bool, method: str, path: str, **kwargs: Any) -> Any:
        if retry:
            return self.retry_strategy.execute(self._make_request, method, path, **kwargs)
        return self._make_request(method, path, **kwargs)

    def get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        retry: bool = True
    ) -> Any:
        """GET ``path``; ``retry=False`` for calls that must not repeat."""
        return self._send(retry, "GET", path, headers=headers, params=params)

    def post(
        self,
        path: str,
        json_data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        retry: bool = True
    ) -> Any:
        """POST ``json_data`` to ``path``."""
        return self._send(retry, "POST", path, headers=headers, json_data=json_data)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
