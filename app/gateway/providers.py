"""Provider selection.

A ``ProviderState`` is built once from configuration and never mutated.
Re-initialization builds a fresh state (and a fresh gateway around it)
instead of patching the running one, so in-flight calls finish against the
state they started with.

Selection rules:
  - preferred provider has a key   → active = preferred
  - only the alternate has a key   → active = alternate, fallback_used = True
  - neither                        → status UNAVAILABLE, active = None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from app.core.config import Settings
from app.gateway.types import AiProvider, ProviderStatus
from app.gateway.vendor_adapters import BaseProviderAdapter, get_adapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderState:
    preferred: AiProvider
    active: AiProvider | None = None
    adapters: dict[AiProvider, BaseProviderAdapter] = field(default_factory=dict)
    fallback_used: bool = False

    @property
    def status(self) -> ProviderStatus:
        return ProviderStatus.LOADED if self.active is not None else ProviderStatus.UNAVAILABLE

    @property
    def is_available(self) -> bool:
        return self.active is not None

    @property
    def adapter(self) -> BaseProviderAdapter | None:
        return self.adapters.get(self.active) if self.active is not None else None

    def to_dict(self) -> dict:
        return {
            "preferred_provider": self.preferred.value,
            "active_provider": self.active.value if self.active else None,
            "status": self.status.value,
            "fallback_used": self.fallback_used,
            "configured_providers": sorted(p.value for p in self.adapters),
        }


def parse_provider(value: str) -> AiProvider:
    try:
        return AiProvider((value or "").strip().lower())
    except ValueError:
        logger.warning("Unknown AI_PROVIDER=%r, defaulting to %s", value, AiProvider.OPENAI.value)
        return AiProvider.OPENAI


def _api_key_for(provider: AiProvider, settings: Settings) -> str:
    if provider is AiProvider.CLAUDE:
        return settings.anthropic_api_key
    return settings.openai_api_key


def _model_for(provider: AiProvider, settings: Settings) -> str:
    if provider is AiProvider.CLAUDE:
        return settings.claude_model
    return settings.openai_model


def _init_adapter(
    provider: AiProvider,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseProviderAdapter | None:
    """Build an adapter, or None when the credential is missing or blank."""
    api_key = (_api_key_for(provider, settings) or "").strip()
    if not api_key:
        logger.warning("%s is not set or empty", provider.credential_name)
        return None
    return get_adapter(
        provider,
        api_key,
        model=_model_for(provider, settings),
        timeout=settings.ai_request_timeout_seconds,
        transport=transport,
    )


def build_provider_state(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderState:
    """Construct adapters for both providers and pick the active one."""
    preferred = parse_provider(settings.ai_provider)

    adapters: dict[AiProvider, BaseProviderAdapter] = {}
    for provider in AiProvider:
        adapter = _init_adapter(provider, settings, transport)
        if adapter is not None:
            adapters[provider] = adapter

    if preferred in adapters:
        state = ProviderState(preferred=preferred, active=preferred, adapters=adapters)
    elif preferred.alternate in adapters:
        logger.warning(
            "%s API not available, falling back to %s",
            preferred.value,
            preferred.alternate.value,
        )
        state = ProviderState(
            preferred=preferred,
            active=preferred.alternate,
            adapters=adapters,
            fallback_used=True,
        )
    else:
        logger.error(
            "No AI provider available. Set %s (AI_PROVIDER=%s)",
            preferred.credential_name,
            preferred.value,
        )
        state = ProviderState(preferred=preferred, adapters=adapters)

    logger.info(
        "AI providers initialized: active=%s status=%s",
        state.active.value if state.active else None,
        state.status.value,
    )
    return state
