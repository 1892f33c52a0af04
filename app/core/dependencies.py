from uuid import UUID

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from app.core.security import decode_token
from app.db.postgres import get_db
from app.gateway.gateway import AiGateway
from app.models.project import Project
from app.models.team import Team, TeamMember
from app.models.user import User


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    authorization: str = Header(..., description="Bearer <token>"),
) -> User:
    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Invalid authorization header")

    token = authorization[7:]
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid or expired token")

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        uid = UUID(user_id)
    except ValueError:
        raise UnauthorizedError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == uid, User.is_active == True))  # noqa: E712
    user = result.scalar_one_or_none()
    if not user:
        raise UnauthorizedError("User not found or inactive")

    return user


async def check_team_membership(team_id: int, user: User, db: AsyncSession) -> str:
    """Return the user's role in the team. The owner counts as OWNER without a membership row."""
    result = await db.execute(select(Team).where(Team.id == team_id, Team.deleted_at.is_(None)))
    team = result.scalar_one_or_none()
    if not team:
        raise NotFoundError("Team not found")

    if team.owner_id == user.id:
        return "OWNER"

    result = await db.execute(
        select(TeamMember.role).where(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
    )
    role = result.scalar_one_or_none()
    if role is None:
        raise ForbiddenError("Access denied: Not a team member")
    return role


async def check_project_access(project_id: int, user: User, db: AsyncSession) -> Project:
    """Verify the project exists and the user belongs to its team."""
    result = await db.execute(select(Project).where(Project.id == project_id, Project.deleted_at.is_(None)))
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project not found")

    await check_team_membership(project.team_id, user, db)
    return project


def get_ai_gateway(request: Request) -> AiGateway:
    """Current gateway; replaced wholesale by POST /ai/reinitialize."""
    return request.app.state.ai_gateway
