"""Read-only issue/project/label lookups used by the AI gateway."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.issue import Issue
from app.models.label import Label
from app.models.project import Project


async def find_issue(db: AsyncSession, issue_id: int) -> Issue | None:
    result = await db.execute(select(Issue).where(Issue.id == issue_id, Issue.deleted_at.is_(None)))
    return result.scalar_one_or_none()


async def find_project(db: AsyncSession, project_id: int) -> Project | None:
    result = await db.execute(select(Project).where(Project.id == project_id, Project.deleted_at.is_(None)))
    return result.scalar_one_or_none()


async def find_labels(db: AsyncSession, project_id: int) -> list[Label]:
    result = await db.execute(select(Label).where(Label.project_id == project_id).order_by(Label.id))
    return list(result.scalars().all())


async def find_recent_issues(
    db: AsyncSession,
    project_id: int,
    limit: int = 20,
) -> list[Issue]:
    stmt = select(Issue).where(Issue.project_id == project_id, Issue.deleted_at.is_(None))
    result = await db.execute(stmt.order_by(Issue.created_at.desc(), Issue.id.desc()).limit(limit))
    return list(result.scalars().all())
