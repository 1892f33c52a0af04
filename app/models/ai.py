"""Persistence for the AI gateway: per-user request log and per-issue result cache."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class AiRateLimit(Base):
    """One row per admitted AI request. Counted over a sliding window, never updated."""

    __tablename__ = "ai_rate_limits"
    __table_args__ = (Index("ix_ai_rate_limits_user_endpoint_window", "user_id", "endpoint", "window"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(50), nullable=False)  # summary / suggestions / auto-label
    window: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class IssueAiCache(Base):
    """Generated summary/suggestions for an issue, valid while the description hash matches."""

    __tablename__ = "issue_ai_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    issue_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("issues.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggestions: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_description_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    issue: Mapped["Issue"] = relationship("Issue", back_populates="ai_cache")  # noqa: F821
