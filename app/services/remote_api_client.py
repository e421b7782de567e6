"""
Shared async HTTP client for the Dialpad and Microsoft Graph APIs.
Handles auth headers, timeouts, retry with backoff and error mapping.
Configuration is passed in explicitly; nothing here reads global settings.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import AccessDeniedError, RemoteApiError, TransientRemoteError

logger = get_logger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Bounded retry schedule shared by outbound calls and export polling.

    delay(attempt) = base_delay * 2 ** attempt + uniform(0, jitter)
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    jitter: float = 0.0
    retry_status_codes: frozenset[int] = RETRY_STATUS_CODES

    def delay(self, attempt: int) -> float:
        extra = random.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return self.base_delay * (2**attempt) + extra

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retry_status_codes

    def is_retryable_error(self, error: Exception) -> bool:
        # httpx.TimeoutException is a RequestError subclass
        return isinstance(error, httpx.RequestError)


@dataclass(frozen=True, slots=True)
class ApiClientConfig:
    """Everything a client needs to talk to one remote API."""

    base_url: str
    bearer_token: str
    timeout: float = 120.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    extra_headers: dict[str, str] = field(default_factory=dict)


class RemoteApiClient:
    """
    Thin async wrapper around httpx for one remote API.

    Idempotent requests are retried on connection errors, timeouts and
    retryable status codes; non-idempotent requests are sent exactly once.
    """

    def __init__(
        self,
        config: ApiClientConfig,
        service_name: str,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.service_name = service_name
        self._sleep = sleep
        self._client = self._create_client(transport)

    def _create_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        """Create async HTTP client for the remote API."""
        timeout = httpx.Timeout(self.config.timeout)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            timeout=timeout,
            limits=limits,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _get_auth_headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.config.bearer_token}",
            "Accept": "application/json",
        }
        headers.update(self.config.extra_headers)
        return headers

    async def _request_with_retry(
        self, method: str, url: str, operation: str, *, idempotent: bool | None = None, **kwargs
    ) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        policy = self.config.retry_policy
        if idempotent is None:
            idempotent = method.upper() in IDEMPOTENT_METHODS
        max_attempts = max(1, policy.max_attempts) if idempotent else 1

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if attempt >= max_attempts or not policy.is_retryable_error(e):
                    logger.error(
                        f"{self.service_name} API {operation} request failed",
                        attempt=attempt,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise TransientRemoteError(
                        f"{self.service_name} {operation} failed: {type(e).__name__}",
                        operation=operation,
                    ) from e
                backoff = policy.delay(attempt - 1)
                logger.debug(
                    f"{self.service_name} API request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    error_type=type(e).__name__,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            if policy.is_retryable_status(response.status_code) and attempt < max_attempts:
                backoff = policy.delay(attempt - 1)
                logger.debug(
                    f"{self.service_name} API retrying request",
                    operation=operation,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue
            return response

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Handle and validate an API response.

        Returns:
            Parsed JSON body ({} when empty)

        Raises:
            AccessDeniedError: on 403
            TransientRemoteError: on 429 and 5xx
            RemoteApiError: on any other failure
        """
        logger.debug(
            f"{self.service_name} API {operation} response",
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error(f"Failed to parse {self.service_name} {operation} response", error=str(e))
                raise RemoteApiError(
                    f"Invalid response format: {e}", operation=operation, status_code=response.status_code
                ) from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}
        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        if isinstance(error_info, dict):
            error_code = str(error_info.get("code", response.status_code))
            error_message = error_info.get("message") or response.text[:200]
        else:
            error_code = str(response.status_code)
            error_message = str(error_info)

        logger.error(
            f"{self.service_name} API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        status_code = response.status_code
        message = f"{self.service_name} {operation} failed (HTTP {status_code}): {error_message}"
        if status_code == 403:
            error_cls = AccessDeniedError
        elif status_code in self.config.retry_policy.retry_status_codes:
            error_cls = TransientRemoteError
        else:
            error_cls = RemoteApiError
        raise error_cls(
            message,
            operation=operation,
            status_code=status_code,
            error_code=error_code,
            response_data=error_data if isinstance(error_data, dict) else {},
        )

    async def get_json(
        self,
        url: str,
        params: dict | None = None,
        operation: str = "get",
        headers: dict | None = None,
    ) -> Any:
        """GET a JSON document; url may be a path or an absolute next-link."""
        request_headers = self._get_auth_headers()
        if headers:
            request_headers.update(headers)
        response = await self._request_with_retry(
            "GET", url, operation, params=params, headers=request_headers
        )
        return self._handle_api_response(response, operation)

    async def post_json(self, url: str, payload: dict, operation: str = "post") -> Any:
        """POST once; submissions are not idempotent so they are never retried."""
        headers = self._get_auth_headers()
        headers["Content-Type"] = "application/json"
        response = await self._request_with_retry(
            "POST", url, operation, idempotent=False, json=payload, headers=headers
        )
        return self._handle_api_response(response, operation)

    async def get_text(self, url: str, operation: str = "download", timeout: float | None = None) -> str:
        """
        Download a document as text.

        Used for pre-signed export links, so no Authorization header is sent.
        """
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        response = await self._request_with_retry("GET", url, operation, **kwargs)
        if not response.is_success:
            self._handle_api_response(response, operation)
        return response.text
