import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.dependencies import check_project_access, get_current_user
from app.core.exceptions import NotFoundError
from app.db.postgres import get_db
from app.gateway.cache import invalidate_issue_cache
from app.models.issue import Issue
from app.models.user import User
from app.schemas.issue import IssueResponse, IssueUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["issues"])


async def _get_issue(issue_id: int, user: User, db: AsyncSession) -> Issue:
    result = await db.execute(
        select(Issue).options(selectinload(Issue.labels)).where(Issue.id == issue_id, Issue.deleted_at.is_(None))
    )
    issue = result.scalar_one_or_none()
    if not issue:
        raise NotFoundError("Issue not found")
    await check_project_access(issue.project_id, user, db)
    return issue


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(
    issue_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await _get_issue(issue_id, user, db)


@router.patch("/{issue_id}", response_model=IssueResponse)
async def update_issue(
    issue_id: int,
    body: IssueUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    issue = await _get_issue(issue_id, user, db)

    update_data = body.model_dump(exclude_unset=True)
    description_changed = "description" in update_data and update_data["description"] != issue.description

    for field, value in update_data.items():
        if value is None and field != "description":
            continue
        setattr(issue, field, value)
    await db.flush()

    if description_changed:
        await invalidate_issue_cache(db, issue_id)
        logger.info("Issue %s description changed; AI cache invalidated", issue_id)

    return issue
