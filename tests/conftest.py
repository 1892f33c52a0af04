from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings

# Override settings for tests
settings.jwt_secret_key = "test-secret-key-that-is-at-least-32-bytes-long"
settings.app_env = "development"
settings.openai_api_key = ""
settings.anthropic_api_key = ""

from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.postgres import get_db  # noqa: E402
from app.gateway.errors import ProviderError  # noqa: E402
from app.gateway.gateway import AiGateway  # noqa: E402
from app.gateway.types import ProviderErrorKind  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Issue, Label, Project, Team, User  # noqa: E402
from helpers import FakeClock  # noqa: E402

# In-memory SQLite shared by every session in a test (StaticPool = one connection)
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def reset_http_limiter():
    app.state.limiter.reset()


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def user(db: AsyncSession) -> User:
    u = User(email="dev@example.com", name="Dev")
    db.add(u)
    await db.commit()
    return u


@pytest.fixture
async def project(db: AsyncSession, user: User) -> Project:
    team = Team(name="Core", owner_id=user.id)
    db.add(team)
    await db.flush()
    p = Project(team_id=team.id, owner_id=user.id, name="Tracker")
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
async def issue(db: AsyncSession, project: Project, user: User) -> Issue:
    i = Issue(
        project_id=project.id,
        creator_id=user.id,
        title="Login button unresponsive",
        description="Clicking the login button on Safari does nothing; no network request is sent.",
    )
    db.add(i)
    await db.commit()
    return i


@pytest.fixture
async def foreign_issue(db: AsyncSession) -> Issue:
    """Issue in another team's project."""
    owner = User(email="other-team@example.com", name="Other")
    db.add(owner)
    await db.flush()
    team = Team(name="Payments", owner_id=owner.id)
    db.add(team)
    await db.flush()
    other_project = Project(team_id=team.id, owner_id=owner.id, name="Billing")
    db.add(other_project)
    await db.flush()
    i = Issue(
        project_id=other_project.id,
        creator_id=owner.id,
        title="Refund webhook drops events",
        description="Stripe refund webhooks are acknowledged but never persisted.",
    )
    db.add(i)
    await db.commit()
    return i


@pytest.fixture
async def labels(db: AsyncSession, project: Project) -> list[Label]:
    items = [Label(project_id=project.id, name="Bug"), Label(project_id=project.id, name="Backend")]
    db.add_all(items)
    await db.commit()
    return items


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def new_user_id() -> uuid.UUID:
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# Gateway fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transient_error() -> ProviderError:
    return ProviderError("Service Unavailable", kind=ProviderErrorKind.TRANSIENT, status_code=503)


@pytest.fixture
def use_gateway():
    """Install a gateway on the app for API tests; restores the previous one afterwards."""
    previous = app.state.ai_gateway

    def _install(gateway: AiGateway) -> AiGateway:
        app.state.ai_gateway = gateway
        return gateway

    yield _install
    app.state.ai_gateway = previous
