"""Error taxonomy surfaced by the AI gateway.

The API layer maps these onto HTTP statuses (see ``app.main``):
  - NotConfiguredError       → 400
  - DescriptionTooShortError → 400
  - AiNotFoundError          → 404
  - RateLimitExceededError   → 429 (+ Retry-After)
  - ProviderError            → 503 if transient, else 502
"""

from __future__ import annotations

from app.gateway.types import AiProvider, ProviderErrorKind


class AiError(Exception):
    """Base class for all gateway errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotConfiguredError(AiError):
    """No provider could be initialized from configuration."""


class RateLimitExceededError(AiError):
    """User exhausted the per-endpoint quota for the current window."""

    def __init__(self, max_requests: int, window_minutes: int, retry_after: int):
        super().__init__(
            f"Rate limit exceeded. You can make {max_requests} requests per {window_minutes} minute(s). "
            f"Please try again in {retry_after} seconds."
        )
        self.max_requests = max_requests
        self.window_minutes = window_minutes
        self.retry_after = retry_after


class DescriptionTooShortError(AiError):
    def __init__(self, message: str = "Description too short for AI processing"):
        super().__init__(message)


class AiNotFoundError(AiError):
    """Issue or project referenced by a gateway call does not exist."""


class ProviderError(AiError):
    """Failure reported by (or while talking to) a provider backend."""

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
        provider: AiProvider | None = None,
        status_code: int = 0,
        error_code: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code
        self.error_code = error_code

    @property
    def retryable(self) -> bool:
        return self.kind is ProviderErrorKind.TRANSIENT
