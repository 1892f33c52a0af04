"""Per-user, per-endpoint rate limiter backed by the ai_rate_limits table.

Sliding window: a request is admitted when fewer than ``max_requests`` rows
exist for (user, endpoint) with ``window >= now - window_duration``. Admission
inserts one row. Count and insert are separate statements, so concurrent
requests from the same user may overshoot the quota slightly.

Usage:
    limiter = RateLimiter(RateLimitConfig(window_minutes=1, max_requests=20))

    await limiter.check_rate_limit(db, user_id, AiEndpoint.SUMMARY)  # raises when exhausted
    remaining = await limiter.get_remaining_requests(db, user_id, AiEndpoint.SUMMARY)
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.gateway.errors import RateLimitExceededError
from app.gateway.types import DEFAULT_RATE_LIMIT, AiEndpoint, RateLimitConfig
from app.models.ai import AiRateLimit

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class RateLimiter:
    """Database-backed sliding-window limiter."""

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or DEFAULT_RATE_LIMIT
        self._clock = clock

    def _window_start(self, now: datetime) -> datetime:
        return now - timedelta(minutes=self.config.window_minutes)

    def _where(self, user_id: uuid.UUID, endpoint: AiEndpoint, since: datetime):
        return and_(
            AiRateLimit.user_id == user_id,
            AiRateLimit.endpoint == endpoint.value,
            AiRateLimit.window >= since,
        )

    async def _count(self, db: AsyncSession, user_id: uuid.UUID, endpoint: AiEndpoint, since: datetime) -> int:
        result = await db.execute(select(func.count(AiRateLimit.id)).where(self._where(user_id, endpoint, since)))
        return result.scalar() or 0

    async def _retry_after(self, db: AsyncSession, user_id: uuid.UUID, endpoint: AiEndpoint, now: datetime) -> int:
        """Seconds until the oldest counted request leaves the window."""
        since = self._window_start(now)
        result = await db.execute(select(func.min(AiRateLimit.window)).where(self._where(user_id, endpoint, since)))
        oldest = result.scalar()
        if oldest is None:
            return self.config.window_seconds
        expires = _as_utc(oldest) + timedelta(minutes=self.config.window_minutes)
        return max(1, math.ceil((expires - now).total_seconds()))

    async def check_rate_limit(self, db: AsyncSession, user_id: uuid.UUID, endpoint: AiEndpoint) -> None:
        """Admit one request or raise RateLimitExceededError.

        Admission consumes one unit of quota (a new ai_rate_limits row).
        """
        now = self._clock()
        count = await self._count(db, user_id, endpoint, self._window_start(now))

        if count >= self.config.max_requests:
            retry_after = await self._retry_after(db, user_id, endpoint, now)
            logger.warning(
                "AI rate limit exceeded for user=%s endpoint=%s (%d/%d)",
                user_id,
                endpoint.value,
                count,
                self.config.max_requests,
                extra={"user_id": user_id, "endpoint": endpoint.value},
            )
            raise RateLimitExceededError(
                max_requests=self.config.max_requests,
                window_minutes=self.config.window_minutes,
                retry_after=retry_after,
            )

        # Committed right away: quota is spent even if the provider call later fails
        db.add(AiRateLimit(user_id=user_id, endpoint=endpoint.value, window=now))
        await db.commit()

    async def get_remaining_requests(self, db: AsyncSession, user_id: uuid.UUID, endpoint: AiEndpoint) -> int:
        """Remaining quota in the current window. Read-only."""
        now = self._clock()
        count = await self._count(db, user_id, endpoint, self._window_start(now))
        return max(0, self.config.max_requests - count)
