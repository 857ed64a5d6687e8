"""Error translation — collapse provider error payloads into the shared taxonomy.

Provider error bodies differ:

- Anthropic: ``{"type": "error", "error": {"type", "message"}}``
- OpenAI:    ``{"error": {"message", "type", "code", "param"}}``
- Gemini:    ``{"error": {"code", "message", "status", "details"}}``

Raw errors may be parsed bodies (dicts) or exceptions (``httpx`` errors,
SDK errors, builtin timeouts). Classification order: timeout detection,
then the provider's own type/code field, then the HTTP status, then a
generic :class:`ProviderError`. The original value is kept on ``cause``.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import random
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ParamSpec, TypeVar

import httpx

from agentrouter.errors import (
    AgentRouterError,
    AuthenticationError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
)

DEFAULT_TIMEOUT_MS = 60_000
MAX_RETRY_DELAY_MS = 60_000

_TIMEOUT_NAMES = frozenset({"AbortError", "TimeoutError"})
_TIMEOUT_MESSAGES = ("timeout", "timed out", "etimedout", "econnaborted")
_TIMEOUT_CODES = frozenset({"ETIMEDOUT", "ECONNABORTED", "ESOCKETTIMEDOUT"})

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------


def _get(obj: Any, key: str) -> Any:
    """Read *key* from a mapping or an attribute, whichever *obj* has."""
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _body(error: Any) -> Mapping[str, Any]:
    """Locate the provider's JSON error body on *error*."""
    if isinstance(error, Mapping):
        return error
    body = getattr(error, "body", None)
    if isinstance(body, Mapping):
        return body
    response = getattr(error, "response", None)
    if isinstance(response, httpx.Response):
        try:
            parsed = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError, httpx.ResponseNotRead):
            return {}
        if isinstance(parsed, Mapping):
            return parsed
    return {}


def _nested_error(error: Any) -> Mapping[str, Any]:
    nested = _body(error).get("error")
    return nested if isinstance(nested, Mapping) else {}


def extract_status_code(error: Any) -> int | None:
    """HTTP status from ``status``, ``statusCode``, ``status_code`` or ``response.status[_code]``."""
    for key in ("status", "statusCode", "status_code"):
        value = _get(error, key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = _get(error, "response")
    if response is not None:
        for key in ("status", "status_code"):
            value = _get(response, key)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


def extract_message(error: Any, default: str) -> str:
    nested = _nested_error(error).get("message")
    if isinstance(nested, str) and nested:
        return nested
    if isinstance(error, str):
        return error or default
    if isinstance(error, BaseException):
        return str(error) or default
    message = _get(error, "message")
    if isinstance(message, str) and message:
        return message
    return default


def is_timeout_error(error: Any) -> bool:
    """Whether *error* looks like an aborted or timed-out request."""
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return True

    name = type(error).__name__ if isinstance(error, BaseException) else _get(error, "name")
    if name in _TIMEOUT_NAMES:
        return True

    text = str(error) if isinstance(error, BaseException) else _get(error, "message")
    if isinstance(text, str) and any(term in text.lower() for term in _TIMEOUT_MESSAGES):
        return True

    code = _get(error, "code")
    return isinstance(code, str) and code in _TIMEOUT_CODES


def extract_retry_after(error: Any) -> float | None:
    """Retry hint in milliseconds, if the error carries one.

    A numeric ``retryAfter`` is read as seconds when ``<= 1000`` and as
    milliseconds above that; a ``retry-after`` header is integer seconds.
    """
    for key in ("retryAfter", "retry_after"):
        value = _get(error, key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value) if value > 1000 else float(value) * 1000

    headers = _get(error, "headers")
    if headers is None:
        response = _get(error, "response")
        headers = _get(response, "headers") if response is not None else None
    if headers is not None:
        raw = headers.get("retry-after") or headers.get("Retry-After")
        if raw:
            try:
                return int(str(raw).strip()) * 1000.0
            except ValueError:
                return None
    return None


def _status_error(status_code: int, message: str, provider: str, cause: Any) -> AgentRouterError:
    if status_code == 400:
        return ConfigurationError(f"Invalid request: {message}", cause=cause)
    if status_code in (401, 403):
        return AuthenticationError(provider, status_code, cause=cause)
    if status_code == 429:
        return RateLimitError(provider, extract_retry_after(cause), cause=cause)
    if 500 <= status_code < 600:
        return ProviderError(
            f"Provider error ({status_code}): {message}", provider, status_code, cause=cause
        )
    return ProviderError(message, provider, status_code, cause=cause)


# ---------------------------------------------------------------------------
# Provider-specific translators
# ---------------------------------------------------------------------------


def translate_anthropic_error(error: Any) -> AgentRouterError:
    provider = "anthropic"
    if is_timeout_error(error):
        return RequestTimeoutError(provider, DEFAULT_TIMEOUT_MS, cause=error)

    message = extract_message(error, "Unknown Anthropic error")
    status_code = extract_status_code(error)
    error_type = _nested_error(error).get("type")

    if error_type == "invalid_request_error":
        return ConfigurationError(f"Invalid request: {message}", cause=error)
    if error_type == "authentication_error":
        return AuthenticationError(provider, 401, cause=error)
    if error_type == "permission_error":
        return AuthenticationError(provider, 403, cause=error)
    if error_type == "rate_limit_error":
        return RateLimitError(provider, extract_retry_after(error), cause=error)
    if error_type == "api_error":
        return ProviderError(
            f"Anthropic API error: {message}", provider, status_code or 500, cause=error
        )
    if error_type == "overloaded_error":
        return ProviderError(f"Anthropic API overloaded: {message}", provider, 529, cause=error)

    if status_code is not None:
        return _status_error(status_code, message, provider, error)
    return ProviderError(message, provider, cause=error)


def translate_openai_error(error: Any, provider: str = "openai") -> AgentRouterError:
    """Classify a chat-completion error; *provider* names an OpenAI-compatible vendor."""
    if is_timeout_error(error):
        return RequestTimeoutError(provider, DEFAULT_TIMEOUT_MS, cause=error)

    message = extract_message(error, "Unknown OpenAI error")
    status_code = extract_status_code(error)
    nested = _nested_error(error)
    error_code = nested.get("code")
    error_type = nested.get("type")

    if error_code == "invalid_api_key":
        return AuthenticationError(provider, 401, cause=error)
    if error_code in ("insufficient_quota", "rate_limit_exceeded"):
        return RateLimitError(provider, extract_retry_after(error), cause=error)
    if error_code == "model_not_found":
        return ConfigurationError(f"Model not found: {message}", cause=error)
    if error_code == "context_length_exceeded":
        return ConfigurationError(f"Context length exceeded: {message}", cause=error)

    if error_type == "invalid_request_error":
        return ConfigurationError(f"Invalid request: {message}", cause=error)
    if error_type == "authentication_error":
        return AuthenticationError(provider, 401, cause=error)
    if error_type == "rate_limit_error":
        return RateLimitError(provider, extract_retry_after(error), cause=error)
    if error_type == "server_error":
        return ProviderError(
            f"OpenAI server error: {message}", provider, status_code or 500, cause=error
        )

    if status_code is not None:
        return _status_error(status_code, message, provider, error)
    return ProviderError(message, provider, cause=error)


def translate_gemini_error(error: Any) -> AgentRouterError:
    provider = "google"
    if is_timeout_error(error):
        return RequestTimeoutError(provider, DEFAULT_TIMEOUT_MS, cause=error)

    message = extract_message(error, "Unknown Gemini error")
    nested = _nested_error(error)
    status = nested.get("status")
    code = nested.get("code")
    status_code = extract_status_code(error)
    if status_code is None and isinstance(code, int):
        status_code = code

    if status in ("INVALID_ARGUMENT", "FAILED_PRECONDITION"):
        return ConfigurationError(f"Invalid argument: {message}", cause=error)
    if status == "NOT_FOUND":
        return ConfigurationError(f"Resource not found: {message}", cause=error)
    if status == "UNAUTHENTICATED":
        return AuthenticationError(provider, 401, cause=error)
    if status == "PERMISSION_DENIED":
        return AuthenticationError(provider, 403, cause=error)
    if status == "RESOURCE_EXHAUSTED":
        return RateLimitError(provider, extract_retry_after(error), cause=error)
    if status == "INTERNAL":
        return ProviderError(
            f"Gemini internal error: {message}", provider, status_code or 500, cause=error
        )
    if status == "UNAVAILABLE":
        return ProviderError(
            f"Gemini service unavailable: {message}", provider, status_code or 503, cause=error
        )
    if status == "DEADLINE_EXCEEDED":
        return RequestTimeoutError(provider, DEFAULT_TIMEOUT_MS, cause=error)

    if status_code is not None:
        return _status_error(status_code, message, provider, error)
    return ProviderError(message, provider, cause=error)


def translate_generic_error(error: Any, provider: str) -> AgentRouterError:
    """Fallback for providers without a dedicated translator."""
    if isinstance(error, AgentRouterError):
        return error
    if is_timeout_error(error):
        return RequestTimeoutError(provider, DEFAULT_TIMEOUT_MS, cause=error)

    message = extract_message(error, "Unknown error")
    status_code = extract_status_code(error)
    if status_code is not None:
        return _status_error(status_code, message, provider, error)
    return ProviderError(message, provider, cause=error)


_TRANSLATORS: dict[str, Callable[[Any], AgentRouterError]] = {
    "anthropic": translate_anthropic_error,
    "openai": translate_openai_error,
    "google": translate_gemini_error,
    "gemini": translate_gemini_error,
}


def translate_provider_error(error: Any, provider: str) -> AgentRouterError:
    """Classify *error* raised by (or returned from) *provider*.

    Already-classified errors are returned unchanged, so translating twice
    is a no-op whatever provider the second call names.
    """
    if isinstance(error, AgentRouterError):
        return error
    translator = _TRANSLATORS.get(provider.strip().lower())
    logger.debug("Translating %s error: %r", provider, error)
    if translator is None:
        return translate_generic_error(error, provider)
    return translator(error)


def with_error_translation(
    provider: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorate an async callable so anything it raises leaves as a taxonomy error."""

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                raise translate_provider_error(exc, provider) from exc

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Retry guidance (the layer itself never retries)
# ---------------------------------------------------------------------------


def is_retryable_error(error: BaseException) -> bool:
    """RateLimit and Timeout always; Provider only for 5xx/429; everything else never."""
    if isinstance(error, AgentRouterError):
        return error.is_retryable
    return False


def get_retry_delay(
    error: BaseException,
    attempt: int,
    base_delay_ms: float = 1000,
    rng: random.Random | None = None,
) -> float | None:
    """Recommended delay in ms before retry *attempt* (1-based), or ``None``.

    An explicit rate-limit hint wins. Otherwise exponential backoff with up
    to 10% jitter, capped at 60 seconds.
    """
    if not is_retryable_error(error):
        return None
    if isinstance(error, RateLimitError) and error.retry_after_ms is not None:
        return error.retry_after_ms

    exponential = base_delay_ms * 2 ** max(attempt - 1, 0)
    jitter = (rng or random).random() * 0.1 * exponential
    return min(exponential + jitter, MAX_RETRY_DELAY_MS)
