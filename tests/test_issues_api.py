import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models import IssueAiCache
from helpers import StubAdapter, make_gateway


@pytest.mark.asyncio
async def test_get_issue(client: AsyncClient, auth_headers, issue):
    response = await client.get(f"/api/v1/issues/{issue.id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Login button unresponsive"
    assert data["status"] == "Backlog"
    assert data["priority"] == "MEDIUM"
    assert data["labels"] == []


@pytest.mark.asyncio
async def test_get_missing_issue(client: AsyncClient, auth_headers):
    response = await client.get("/api/v1/issues/12345", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_issue_fields(client: AsyncClient, auth_headers, issue):
    response = await client.patch(
        f"/api/v1/issues/{issue.id}",
        json={"title": "Login broken on Safari", "priority": "HIGH"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Login broken on Safari"
    assert response.json()["priority"] == "HIGH"


@pytest.mark.asyncio
async def test_update_rejects_bad_priority(client: AsyncClient, auth_headers, issue):
    response = await client.patch(f"/api/v1/issues/{issue.id}", json={"priority": "URGENT"}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_description_change_invalidates_ai_cache(client: AsyncClient, auth_headers, db, issue, use_gateway):
    adapter = use_gateway(make_gateway(StubAdapter(["First summary", "Second summary"]))).providers.adapter

    first = await client.get(f"/api/v1/ai/summary?issue_id={issue.id}", headers=auth_headers)
    assert first.json()["summary"] == "First summary"

    response = await client.patch(
        f"/api/v1/issues/{issue.id}",
        json={"description": "Login works on Safari 17 but fails on Safari 16 with a console error."},
        headers=auth_headers,
    )
    assert response.status_code == 200

    entry = (await db.execute(select(IssueAiCache).where(IssueAiCache.issue_id == issue.id))).scalar_one()
    await db.refresh(entry)
    assert entry.summary is None
    assert entry.last_description_hash is None

    second = await client.get(f"/api/v1/ai/summary?issue_id={issue.id}", headers=auth_headers)
    assert second.json()["summary"] == "Second summary"
    assert adapter.calls == 2


@pytest.mark.asyncio
async def test_title_change_keeps_ai_cache(client: AsyncClient, auth_headers, issue, use_gateway):
    adapter = use_gateway(make_gateway(StubAdapter(["Only summary"]))).providers.adapter

    await client.get(f"/api/v1/ai/summary?issue_id={issue.id}", headers=auth_headers)
    await client.patch(f"/api/v1/issues/{issue.id}", json={"title": "Renamed"}, headers=auth_headers)
    response = await client.get(f"/api/v1/ai/summary?issue_id={issue.id}", headers=auth_headers)

    assert response.json()["summary"] == "Only summary"
    assert adapter.calls == 1
