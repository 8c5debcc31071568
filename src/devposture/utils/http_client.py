"""HTTP client utilities for threat-intel enrichment."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableHTTPError(HTTPClientError):
    """HTTP error that can be retried."""


class NonRetryableHTTPError(HTTPClientError):
    """HTTP error that should not be retried."""


@asynccontextmanager
async def create_http_client(
    timeout: float = 8,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async HTTP client bounded by a total request timeout.

    Args:
        timeout: Request timeout in seconds.
        transport: Optional transport, used to stub the network in tests.
        **kwargs: Additional arguments passed to httpx.AsyncClient.

    Yields:
        Configured httpx.AsyncClient instance.
    """
    kwargs.pop("timeout", None)
    if transport is not None:
        kwargs["transport"] = transport

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"Accept": "application/json"},
        **kwargs,
    ) as client:
        yield client


def create_retry_decorator(
    max_attempts: int = 2,
    min_wait: float = 1,
    max_wait: float = 4,
) -> Any:
    """Create a tenacity retry decorator for transient HTTP failures.

    Args:
        max_attempts: Maximum number of attempts.
        min_wait: Minimum wait time between attempts (seconds).
        max_wait: Maximum wait time between attempts (seconds).

    Returns:
        Configured retry decorator.
    """
    return retry(
        retry=retry_if_exception_type(
            (RetryableHTTPError, httpx.TimeoutException, httpx.NetworkError)
        ),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying request (attempt {retry_state.attempt_number}): "
            f"{retry_state.outcome.exception() if retry_state.outcome else 'unknown error'}"
        ),
    )


def handle_response(response: httpx.Response) -> Any:
    """Return the decoded JSON body or raise a typed error.

    Args:
        response: httpx Response object.

    Returns:
        Parsed JSON response data (may be None for a ``null`` body).

    Raises:
        RetryableHTTPError: For 5xx errors and rate limiting.
        NonRetryableHTTPError: For other non-2xx responses and invalid JSON.
    """
    status = response.status_code
    if 200 <= status < 300:
        try:
            return response.json()
        except ValueError as e:
            raise NonRetryableHTTPError(f"Invalid JSON from {response.url}", status) from e

    error_msg = f"HTTP {status}: {response.text[:200]}"

    if status == 429:
        logger.warning("Rate limited by server")
        raise RetryableHTTPError(error_msg, status)

    if status >= 500:
        logger.warning(f"Server error: {error_msg}")
        raise RetryableHTTPError(error_msg, status)

    raise NonRetryableHTTPError(error_msg, status)
