import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import check_project_access, get_ai_gateway, get_current_user
from app.core.exceptions import NotFoundError
from app.core.rate_limit import REINITIALIZE_LIMIT, limiter
from app.db.postgres import get_db
from app.gateway import issue_store
from app.gateway.gateway import AiGateway, reinitialize_providers
from app.gateway.types import AiEndpoint
from app.models.issue import Issue
from app.models.user import User
from app.schemas.ai import (
    AutoLabelRequest,
    AutoLabelResponse,
    DuplicateDetectionRequest,
    DuplicateDetectionResponse,
    DuplicateItem,
    LabelItem,
    ReinitializeResponse,
    RemainingRequestsResponse,
    SuggestionsResponse,
    SummaryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


async def _get_accessible_issue(issue_id: int, user: User, db: AsyncSession) -> Issue:
    issue = await issue_store.find_issue(db, issue_id)
    if not issue:
        raise NotFoundError("Issue not found")
    await check_project_access(issue.project_id, user, db)
    return issue


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    issue_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    await _get_accessible_issue(issue_id, user, db)
    summary = await gateway.generate_issue_summary(db, issue_id, user.id)
    remaining = await gateway.get_remaining_requests(db, user.id, AiEndpoint.SUMMARY)
    return SummaryResponse(summary=summary, remaining_requests=remaining)


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    issue_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    await _get_accessible_issue(issue_id, user, db)
    suggestions = await gateway.generate_issue_suggestions(db, issue_id, user.id)
    remaining = await gateway.get_remaining_requests(db, user.id, AiEndpoint.SUGGESTIONS)
    return SuggestionsResponse(suggestions=suggestions, remaining_requests=remaining)


@router.post("/duplicate-detection", response_model=DuplicateDetectionResponse)
async def detect_duplicates(
    body: DuplicateDetectionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    await check_project_access(body.project_id, user, db)
    duplicates = await gateway.detect_duplicate_issues(db, body.project_id, body.title, body.description or "")
    return DuplicateDetectionResponse(duplicates=[DuplicateItem(**d.to_dict()) for d in duplicates])


@router.post("/auto-label", response_model=AutoLabelResponse)
async def auto_label(
    body: AutoLabelRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    await check_project_access(body.project_id, user, db)
    labels = await gateway.auto_label_issue(db, body.issue_id, body.project_id, user.id)
    return AutoLabelResponse(labels=[LabelItem.model_validate(label) for label in labels])


@router.get("/remaining", response_model=RemainingRequestsResponse)
async def remaining_requests(
    endpoint: AiEndpoint = Query(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    remaining = await gateway.get_remaining_requests(db, user.id, endpoint)
    return RemainingRequestsResponse(endpoint=endpoint, remaining_requests=remaining)


@router.get("/status")
async def provider_status(
    user: User = Depends(get_current_user),
    gateway: AiGateway = Depends(get_ai_gateway),
):
    return gateway.get_status()


@router.post("/reinitialize", response_model=ReinitializeResponse)
@limiter.limit(REINITIALIZE_LIMIT)
async def reinitialize(
    request: Request,
    user: User = Depends(get_current_user),
):
    logger.info("AI provider re-initialization requested by user=%s", user.id)
    return ReinitializeResponse(**reinitialize_providers(request.app.state))
