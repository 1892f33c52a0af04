"""Per-issue cache of generated summaries and suggestions.

Entries are keyed by issue and validated against an MD5 hash of the issue's
description; editing the description invalidates the entry.
"""

from __future__ import annotations

import hashlib
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ai import IssueAiCache

CacheField = Literal["summary", "suggestions"]


def description_hash(description: str) -> str:
    return hashlib.md5(description.encode("utf-8")).hexdigest()


async def get_cached(db: AsyncSession, issue_id: int, field: CacheField, content_hash: str) -> str | None:
    """Return the cached value when present and generated from the same description."""
    result = await db.execute(select(IssueAiCache).where(IssueAiCache.issue_id == issue_id))
    entry = result.scalar_one_or_none()
    if entry is None or entry.last_description_hash != content_hash:
        return None
    return getattr(entry, field) or None


async def store_cached(db: AsyncSession, issue_id: int, field: CacheField, value: str, content_hash: str) -> None:
    """Upsert the cache row for an issue.

    A hash change drops the other field too: it was generated from the old description.
    """
    result = await db.execute(select(IssueAiCache).where(IssueAiCache.issue_id == issue_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = IssueAiCache(issue_id=issue_id)
        db.add(entry)
    elif entry.last_description_hash != content_hash:
        entry.summary = None
        entry.suggestions = None

    setattr(entry, field, value)
    entry.last_description_hash = content_hash
    await db.flush()


async def invalidate_issue_cache(db: AsyncSession, issue_id: int) -> None:
    await db.execute(
        update(IssueAiCache)
        .where(IssueAiCache.issue_id == issue_id)
        .values(summary=None, suggestions=None, last_description_hash=None)
    )
