"""Core types and DTOs for the AI gateway."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AiProvider(str, Enum):
    """Supported text-generation backends."""

    OPENAI = "openai"
    CLAUDE = "claude"

    @property
    def alternate(self) -> AiProvider:
        return AiProvider.CLAUDE if self is AiProvider.OPENAI else AiProvider.OPENAI

    @property
    def credential_name(self) -> str:
        """Environment variable holding this provider's API key."""
        return "ANTHROPIC_API_KEY" if self is AiProvider.CLAUDE else "OPENAI_API_KEY"


class AiEndpoint(str, Enum):
    """Rate-limited gateway operations (stored in ai_rate_limits.endpoint)."""

    SUMMARY = "summary"
    SUGGESTIONS = "suggestions"
    AUTO_LABEL = "auto-label"


class ProviderErrorKind(str, Enum):
    """Classification of a provider failure, decided where the raw error is caught."""

    AUTH = "auth"  # 401 / invalid_api_key, never retried
    TRANSIENT = "transient"  # 5xx, 429, connection errors, timeouts
    UNKNOWN = "unknown"  # other 4xx and malformed payloads


class ProviderStatus(str, Enum):
    LOADED = "loaded"
    UNAVAILABLE = "unavailable"


# ---------------------------------------------------------------------------
# Completion request / result
# ---------------------------------------------------------------------------


@dataclass
class CompletionRequest:
    """A single prompt sent to the active provider."""

    user_prompt: str
    system_prompt: str = ""
    max_tokens: int = 150
    temperature: float = 0.3
    model: str = ""  # empty → adapter default


@dataclass
class DuplicateCandidate:
    """An existing issue the provider considers similar to a new one."""

    id: int
    similarity: float
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "similarity": self.similarity, "reason": self.reason}


# ---------------------------------------------------------------------------
# Gateway limits
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-user, per-endpoint quota and retry tunables."""

    window_minutes: int = 1
    max_requests: int = 20
    retry_attempts: int = 2
    retry_delay_seconds: float = 1.0

    @property
    def window_seconds(self) -> int:
        return self.window_minutes * 60


# Operation parameters (max_tokens, temperature)
SUMMARY_PARAMS = {"max_tokens": 150, "temperature": 0.3}
SUGGESTIONS_PARAMS = {"max_tokens": 250, "temperature": 0.5}
DUPLICATES_PARAMS = {"max_tokens": 300, "temperature": 0.1}
LABELS_PARAMS = {"max_tokens": 100, "temperature": 0.3}

MIN_DESCRIPTION_LENGTH = 10  # descriptions must be strictly longer
DUPLICATE_SIMILARITY_THRESHOLD = 0.7
MAX_DUPLICATES = 3
DUPLICATE_CANDIDATE_LIMIT = 20

DEFAULT_RATE_LIMIT = RateLimitConfig()
