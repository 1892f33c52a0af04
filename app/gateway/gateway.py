"""AI gateway: orchestrates every outbound AI call.

Pipeline for the generative operations (summary, suggestions):
  1. Fail fast when no provider is configured
  2. Load the issue and validate its description
  3. Serve from the per-issue cache when the description hash matches
  4. Consume one unit of the user's per-endpoint quota
  5. Call the active provider with retry + linear backoff
  6. Upsert the cache

Advisory operations (duplicate detection, auto-labeling) expect a JSON list
back; when the provider fails or the answer cannot be parsed they return an
empty result instead of failing. Duplicate detection additionally tolerates a
missing configuration; auto-labeling still reports it, along with quota and
missing issue/project errors.

Usage:
    gateway = build_gateway(settings)
    summary = await gateway.generate_issue_summary(db, issue_id, user.id)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.metrics import AI_PROVIDER_LATENCY, AI_REQUESTS
from app.gateway import cache, issue_store
from app.gateway.errors import (
    AiNotFoundError,
    DescriptionTooShortError,
    NotConfiguredError,
    ProviderError,
    RateLimitExceededError,
)
from app.gateway.normalizer import ResponseParseError, clean_text, parse_duplicates, parse_label_names
from app.gateway.providers import ProviderState, build_provider_state
from app.gateway.rate_limiter import RateLimiter
from app.gateway.retry import retry_with_backoff
from app.gateway.types import (
    DUPLICATE_CANDIDATE_LIMIT,
    DUPLICATES_PARAMS,
    LABELS_PARAMS,
    MIN_DESCRIPTION_LENGTH,
    SUGGESTIONS_PARAMS,
    SUMMARY_PARAMS,
    AiEndpoint,
    CompletionRequest,
    DuplicateCandidate,
    ProviderErrorKind,
    RateLimitConfig,
)
from app.models.label import Label

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes issue descriptions in 2-4 sentences. "
    "Focus on the main problem and key requirements."
)

SUGGESTIONS_SYSTEM_PROMPT = (
    "You are a helpful assistant that provides practical suggestions for resolving software issues. "
    "Give 3-5 specific actionable steps."
)

DUPLICATES_SYSTEM_PROMPT = """You are analyzing if a new issue is similar to existing issues. Return only a JSON array with similar issues.
Format: [{"id": "issue_id", "similarity": 0.8, "reason": "brief reason"}]
Only include issues with similarity > 0.7. Maximum 3 results."""

LABELS_SYSTEM_PROMPT = """You are analyzing an issue and recommending labels. Return only a JSON array of label names that match the issue.
Format: ["label1", "label2"]
Only recommend labels that are relevant."""


class AiGateway:
    """Mediates all calls to the configured LLM provider.

    Holds an immutable ProviderState; to pick up new configuration build a new
    gateway (see ``build_gateway``) rather than mutating this one.
    """

    def __init__(
        self,
        providers: ProviderState,
        config: RateLimitConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.providers = providers
        self.config = config or RateLimitConfig()
        self.rate_limiter = rate_limiter or RateLimiter(self.config)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def provider_name(self) -> str:
        return self.providers.active.value if self.providers.active else "none"

    def _ensure_configured(self) -> None:
        if not self.providers.is_available:
            preferred = self.providers.preferred
            raise NotConfiguredError(
                f"AI API key is not configured. Please set {preferred.credential_name} "
                f"in your environment. Current provider: {preferred.value}"
            )

    def _log_extra(self, endpoint: str, user_id: uuid.UUID | None = None, **kwargs) -> dict:
        return {"endpoint": endpoint, "user_id": user_id, "provider": self.provider_name, **kwargs}

    def _normalize_provider_error(self, error: ProviderError) -> ProviderError:
        """Collapse a raw provider failure into a caller-facing message (kind preserved)."""
        credential = self.providers.active.credential_name if self.providers.active else "API key"
        if error.kind is ProviderErrorKind.AUTH:
            message = f"Invalid API key. Please check your {credential} and restart the server."
        elif error.status_code == 429:
            message = "API rate limit exceeded. Please wait a moment and try again."
        elif error.kind is ProviderErrorKind.TRANSIENT:
            reason = error.status_code or error.error_code or "unavailable"
            message = f"AI service temporarily unavailable ({reason}). Please try again in a moment."
        else:
            message = f"AI API error: {error.message or 'Unknown error'}"
        return ProviderError(
            message,
            kind=error.kind,
            provider=error.provider or self.providers.active,
            status_code=error.status_code,
            error_code=error.error_code,
        )

    async def call_ai(self, request: CompletionRequest, endpoint: str, user_id: uuid.UUID | None = None) -> str:
        """Send a prompt to the active provider with retry; returns cleaned text."""
        self._ensure_configured()
        adapter = self.providers.adapter

        start = time.perf_counter()
        try:
            text = await retry_with_backoff(
                lambda: adapter.complete(request),
                max_attempts=self.config.retry_attempts,
                base_delay=self.config.retry_delay_seconds,
                sleep=self._sleep,
            )
        except ProviderError as e:
            AI_REQUESTS.labels(endpoint=endpoint, provider=self.provider_name, outcome="error").inc()
            logger.error(
                "AI call failed for endpoint=%s user=%s provider=%s: %s (%s)",
                endpoint,
                user_id,
                self.provider_name,
                e.message,
                e.kind.value,
                extra=self._log_extra(endpoint, user_id),
            )
            raise self._normalize_provider_error(e) from e
        finally:
            AI_PROVIDER_LATENCY.labels(provider=self.provider_name).observe(time.perf_counter() - start)

        AI_REQUESTS.labels(endpoint=endpoint, provider=self.provider_name, outcome="success").inc()
        return clean_text(text)

    # ------------------------------------------------------------------
    # Generative operations
    # ------------------------------------------------------------------

    async def _generate(
        self,
        db: AsyncSession,
        issue_id: int,
        user_id: uuid.UUID,
        endpoint: AiEndpoint,
        field: cache.CacheField,
        build_request: Callable[[str, str], CompletionRequest],
    ) -> str:
        self._ensure_configured()

        issue = await issue_store.find_issue(db, issue_id)
        if issue is None:
            raise AiNotFoundError("Issue not found")

        description = issue.description or ""
        if len(description) <= MIN_DESCRIPTION_LENGTH:
            raise DescriptionTooShortError()

        content_hash = cache.description_hash(description)
        cached = await cache.get_cached(db, issue_id, field, content_hash)
        if cached:
            AI_REQUESTS.labels(endpoint=endpoint.value, provider=self.provider_name, outcome="cached").inc()
            logger.debug("AI %s cache hit for issue=%s", field, issue_id)
            return cached

        try:
            await self.rate_limiter.check_rate_limit(db, user_id, endpoint)
        except RateLimitExceededError:
            AI_REQUESTS.labels(endpoint=endpoint.value, provider=self.provider_name, outcome="rate_limited").inc()
            raise

        value = await self.call_ai(build_request(issue.title, description), endpoint.value, user_id)
        await cache.store_cached(db, issue_id, field, value, content_hash)
        return value

    async def generate_issue_summary(self, db: AsyncSession, issue_id: int, user_id: uuid.UUID) -> str:
        def build(title: str, description: str) -> CompletionRequest:
            return CompletionRequest(
                system_prompt=SUMMARY_SYSTEM_PROMPT,
                user_prompt=f"Please summarize this issue description:\n\nTitle: {title}\nDescription: {description}",
                **SUMMARY_PARAMS,
            )

        return await self._generate(db, issue_id, user_id, AiEndpoint.SUMMARY, "summary", build)

    async def generate_issue_suggestions(self, db: AsyncSession, issue_id: int, user_id: uuid.UUID) -> str:
        def build(title: str, description: str) -> CompletionRequest:
            return CompletionRequest(
                system_prompt=SUGGESTIONS_SYSTEM_PROMPT,
                user_prompt=(
                    f"Please suggest approaches to resolve this issue:\n\nTitle: {title}\n"
                    f"Description: {description}\n\nProvide practical, actionable suggestions."
                ),
                **SUGGESTIONS_PARAMS,
            )

        return await self._generate(db, issue_id, user_id, AiEndpoint.SUGGESTIONS, "suggestions", build)

    # ------------------------------------------------------------------
    # Advisory operations
    # ------------------------------------------------------------------

    async def detect_duplicate_issues(
        self,
        db: AsyncSession,
        project_id: int,
        title: str,
        description: str = "",
    ) -> list[DuplicateCandidate]:
        """Find existing issues similar to a draft one. Never raises on AI failures."""
        endpoint = "duplicate-detection"
        if not self.providers.is_available:
            logger.warning("AI API is not configured. Skipping duplicate detection.")
            return []

        existing = await issue_store.find_recent_issues(db, project_id, limit=DUPLICATE_CANDIDATE_LIMIT)
        if not existing:
            return []

        listing = "\n".join(
            f"ID: {i.id}\nTitle: {i.title}\nDescription: {i.description or 'No description'}\n---" for i in existing
        )
        request = CompletionRequest(
            system_prompt=DUPLICATES_SYSTEM_PROMPT,
            user_prompt=(
                f"New issue:\nTitle: {title}\nDescription: {description}\n\nExisting issues:\n{listing}"
            ),
            **DUPLICATES_PARAMS,
        )

        try:
            response = await self.call_ai(request, endpoint)
            return parse_duplicates(response, {i.id for i in existing})
        except (ProviderError, NotConfiguredError) as e:
            logger.warning(
                "Duplicate detection degraded for project=%s: %s",
                project_id,
                e,
                extra=self._log_extra(endpoint, project_id=project_id),
            )
        except ResponseParseError as e:
            logger.error(
                "Failed to parse AI duplicate detection response: %s",
                e,
                extra=self._log_extra(endpoint, project_id=project_id),
            )
        AI_REQUESTS.labels(endpoint=endpoint, provider=self.provider_name, outcome="degraded").inc()
        return []

    async def auto_label_issue(
        self,
        db: AsyncSession,
        issue_id: int,
        project_id: int,
        user_id: uuid.UUID,
    ) -> list[Label]:
        """Recommend a subset of the project's existing labels for an issue."""
        endpoint = AiEndpoint.AUTO_LABEL
        self._ensure_configured()

        if await issue_store.find_project(db, project_id) is None:
            raise AiNotFoundError("Project not found")
        issue = await issue_store.find_issue(db, issue_id)
        # Issues from other projects are indistinguishable from missing ones
        if issue is None or issue.project_id != project_id:
            raise AiNotFoundError("Issue not found")

        labels = await issue_store.find_labels(db, project_id)
        if not labels:
            return []

        await self.rate_limiter.check_rate_limit(db, user_id, endpoint)

        available = "\n".join(f"- {label.name}" for label in labels)
        request = CompletionRequest(
            system_prompt=LABELS_SYSTEM_PROMPT,
            user_prompt=(
                f"Issue:\nTitle: {issue.title}\nDescription: {issue.description or 'No description'}\n\n"
                f"Available labels:\n{available}\n\nRecommend relevant labels."
            ),
            **LABELS_PARAMS,
        )
        try:
            response = await self.call_ai(request, endpoint.value, user_id)
            recommended = parse_label_names(response)
        except ProviderError as e:
            logger.warning(
                "Auto-labeling degraded for issue=%s: %s",
                issue_id,
                e,
                extra=self._log_extra(endpoint.value, user_id, issue_id=issue_id),
            )
            AI_REQUESTS.labels(endpoint=endpoint.value, provider=self.provider_name, outcome="degraded").inc()
            return []
        except ResponseParseError as e:
            logger.error(
                "Failed to parse AI label recommendation for issue=%s: %s",
                issue_id,
                e,
                extra=self._log_extra(endpoint.value, user_id, issue_id=issue_id),
            )
            AI_REQUESTS.labels(endpoint=endpoint.value, provider=self.provider_name, outcome="degraded").inc()
            return []

        selected: list[Label] = []
        seen: set[str] = set()
        for label in labels:
            if label.name in recommended and label.name not in seen:
                selected.append(label)
                seen.add(label.name)
        return selected

    # ------------------------------------------------------------------
    # Quota & status
    # ------------------------------------------------------------------

    async def get_remaining_requests(self, db: AsyncSession, user_id: uuid.UUID, endpoint: AiEndpoint) -> int:
        return await self.rate_limiter.get_remaining_requests(db, user_id, endpoint)

    def get_status(self) -> dict:
        return {
            **self.providers.to_dict(),
            "rate_limit": {
                "window_minutes": self.config.window_minutes,
                "max_requests": self.config.max_requests,
            },
        }


def build_gateway(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AiGateway:
    """Build a gateway (and its ProviderState) from configuration."""
    config = RateLimitConfig(
        window_minutes=settings.ai_rate_limit_window_minutes,
        max_requests=settings.ai_rate_limit_max_requests,
        retry_attempts=settings.ai_retry_attempts,
        retry_delay_seconds=settings.ai_retry_delay_seconds,
    )
    return AiGateway(build_provider_state(settings, transport), config)


def reinitialize_providers(state, transport: httpx.AsyncBaseTransport | None = None) -> dict:
    """Re-read configuration and replace ``state.ai_gateway`` with a fresh gateway.

    ``state`` is any attribute holder, normally ``app.state``. Requests already
    holding the previous gateway finish against it.
    """
    gateway = build_gateway(Settings(), transport)
    state.ai_gateway = gateway
    providers = gateway.providers
    logger.info("AI providers re-initialized: active=%s", gateway.provider_name)
    return {
        "active_provider": providers.active.value if providers.active else None,
        "status": providers.status.value,
        "fallback_used": providers.fallback_used,
    }
