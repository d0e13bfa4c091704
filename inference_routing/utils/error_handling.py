"""
Error handling utilities and custom exceptions for the Inference Routing layer.
"""

import asyncio
import json
import random
from typing import Optional, Dict, Any, Awaitable, Callable, TypeVar

import httpx
import openai

from ..models.config import RetryPolicy
from ..models.enums import Backend

T = TypeVar("T")


class RoutingError(Exception):
    """Base exception for all Inference Routing errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class ConfigurationError(RoutingError):
    """Raised when there are configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="CONFIG_ERROR", **kwargs)
        self.config_key = config_key


class BackendError(RoutingError):
    """Raised when a backend call times out, fails or returns a non-success status."""

    def __init__(self, message: str, backend: Backend, cause: Optional[BaseException] = None,
                 status_code: Optional[int] = None, error_code: str = "BACKEND_ERROR", **kwargs):
        super().__init__(message, error_code=error_code, **kwargs)
        self.backend = backend
        self.cause = cause
        self.status_code = status_code

    def __str__(self) -> str:
        return f"[{self.backend.value}] {self.message}"


class MalformedResponseError(BackendError):
    """Raised when a backend answers with a success status but an unusable body."""

    def __init__(self, message: str, backend: Backend, **kwargs):
        super().__init__(message, backend, error_code="MALFORMED_RESPONSE", **kwargs)


def as_backend_error(backend: Backend, error: BaseException) -> BackendError:
    """
    Convert library exceptions raised during a backend call into a BackendError.

    Args:
        backend: Backend the failing call was addressed to
        error: The original exception

    Returns:
        BackendError instance carrying the original exception as its cause
    """
    if isinstance(error, BackendError):
        return error

    if isinstance(error, asyncio.TimeoutError):
        return BackendError("Request timed out", backend, cause=error)
    if isinstance(error, httpx.TimeoutException):
        return BackendError(f"Request timed out: {error}", backend, cause=error)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        snippet = error.response.text[:200]
        return BackendError(f"Returned {status}: {snippet}", backend, cause=error, status_code=status)
    if isinstance(error, httpx.HTTPError):
        return BackendError(f"Connection failed: {error}", backend, cause=error)
    if isinstance(error, openai.APITimeoutError):
        return BackendError("Request timed out", backend, cause=error)
    if isinstance(error, openai.APIStatusError):
        return BackendError(f"Returned {error.status_code}: {error.message}", backend,
                            cause=error, status_code=error.status_code)
    if isinstance(error, openai.APIError):
        return BackendError(f"API error: {error}", backend, cause=error)
    if isinstance(error, (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValueError)):
        return MalformedResponseError(f"Unparseable response body: {error}", backend, cause=error)

    return BackendError(str(error) or type(error).__name__, backend, cause=error)


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Exponential backoff delay for the given zero-based attempt."""
    delay = min(policy.backoff_base_delay * (2 ** attempt), policy.backoff_max_delay)
    if policy.jitter:
        delay += random.uniform(0.1, 0.3) * delay
    return delay


async def retry_async(func: Callable[[], Awaitable[T]], policy: RetryPolicy,
                      retry_on: tuple = (BackendError,), logger=None) -> T:
    """
    Await ``func`` until it succeeds or the policy's attempts are exhausted.

    Args:
        func: Zero-argument coroutine factory
        policy: Retry policy (max attempts, backoff)
        retry_on: Exception types that trigger another attempt
        logger: Optional logger for retry warnings

    Returns:
        The first successful result

    Raises:
        The last exception raised by ``func``
    """
    attempts = max(policy.max_attempts, 1)

    for attempt in range(attempts):
        try:
            return await func()
        except retry_on as e:
            if attempt == attempts - 1:
                raise
            delay = backoff_delay(policy, attempt)
            if logger:
                logger.warning(f"Attempt {attempt + 1}/{attempts} failed: {e}; retrying in {delay:.2f}s")
            if delay > 0:
                await asyncio.sleep(delay)

    raise RuntimeError("unreachable")
