"""Shared error taxonomy for the translation layer.

Every failure that leaves the layer is one of these kinds. Errors that come
from reinterpreting a provider payload keep the raw value on ``cause`` so it
can be inspected while debugging.
"""

from __future__ import annotations


class AgentRouterError(Exception):
    """Base error for all translation-layer failures."""

    code = "AGENT_ROUTER_ERROR"

    def __init__(self, message: str, *, cause: object = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    @property
    def is_retryable(self) -> bool:
        return False


class ConfigurationError(AgentRouterError):
    """The request or local configuration is invalid and will not succeed on retry."""

    code = "CONFIGURATION_ERROR"


class ProviderError(AgentRouterError):
    """A provider API call failed."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        *,
        cause: object = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, cause=cause)

    @property
    def is_retryable(self) -> bool:
        status = self.status_code
        if status is None:
            return False
        return 500 <= status < 600 or status == 429


class RateLimitError(ProviderError):
    """The provider rejected the call because of rate limits or exhausted quota."""

    code = "RATE_LIMIT_ERROR"

    def __init__(
        self,
        provider: str,
        retry_after_ms: float | None = None,
        *,
        cause: object = None,
    ) -> None:
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Rate limit exceeded for provider: {provider}", provider, 429, cause=cause
        )

    @property
    def is_retryable(self) -> bool:
        return True


class AuthenticationError(ProviderError):
    """The provider rejected the credentials (401) or the permissions (403)."""

    code = "AUTHENTICATION_ERROR"

    def __init__(self, provider: str, status_code: int = 401, *, cause: object = None) -> None:
        super().__init__(
            f"Authentication failed for provider: {provider}",
            provider,
            status_code,
            cause=cause,
        )

    @property
    def is_retryable(self) -> bool:
        return False


class RequestTimeoutError(ProviderError):
    """The request was aborted or exceeded its deadline."""

    code = "TIMEOUT_ERROR"

    def __init__(self, provider: str, timeout_ms: float, *, cause: object = None) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Request to {provider} timed out after {timeout_ms:g}ms", provider, cause=cause
        )

    @property
    def is_retryable(self) -> bool:
        return True


class TranslationError(AgentRouterError):
    """A structure could not be translated between formats.

    Raised for malformed tool schemas, unknown provider names, broken stream
    sequences and explicit in-stream error events.
    """

    code = "TRANSLATION_ERROR"

    def __init__(
        self,
        message: str,
        source_format: str,
        target_format: str,
        *,
        index: int | None = None,
        cause: object = None,
    ) -> None:
        self.source_format = source_format
        self.target_format = target_format
        self.index = index
        super().__init__(message, cause=cause)
