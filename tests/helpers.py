"""Test doubles shared across the gateway tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.gateway.gateway import AiGateway
from app.gateway.providers import ProviderState
from app.gateway.rate_limiter import RateLimiter
from app.gateway.types import AiProvider, CompletionRequest, RateLimitConfig
from app.gateway.vendor_adapters import BaseProviderAdapter


class StubAdapter(BaseProviderAdapter):
    """Adapter that replays scripted results: strings are returned, exceptions raised."""

    provider = AiProvider.OPENAI

    def __init__(self, results: list | None = None, provider: AiProvider = AiProvider.OPENAI):
        super().__init__(api_key="stub-key")
        self.provider = provider
        self.results = list(results or [])
        self.requests: list[CompletionRequest] = []

    def _headers(self) -> dict[str, str]:
        return {}

    def _payload(self, request: CompletionRequest) -> dict:
        return {}

    def _extract_text(self, data: dict) -> str:
        return ""

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        if not self.results:
            raise AssertionError("StubAdapter: no scripted result left")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def calls(self) -> int:
        return len(self.requests)


class FakeClock:
    """Mutable clock for sliding-window tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def _no_sleep(_: float) -> None:
    return None


def make_gateway(
    adapter: StubAdapter | None = None,
    config: RateLimitConfig | None = None,
    clock: FakeClock | None = None,
) -> AiGateway:
    """Gateway around a stub adapter; ``None`` gives an unconfigured gateway."""
    config = config or RateLimitConfig()
    if adapter is None:
        providers = ProviderState(preferred=AiProvider.OPENAI)
    else:
        providers = ProviderState(
            preferred=adapter.provider,
            active=adapter.provider,
            adapters={adapter.provider: adapter},
        )
    limiter = RateLimiter(config, clock=clock or FakeClock())
    return AiGateway(providers, config, rate_limiter=limiter, sleep=_no_sleep)
