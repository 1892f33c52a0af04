from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.ai import LabelItem


class IssueUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = Field(None, max_length=20_000)
    status: str | None = Field(None, max_length=50)
    priority: str | None = Field(None, pattern="^(HIGH|MEDIUM|LOW)$")


class IssueResponse(BaseModel):
    id: int
    project_id: int
    title: str
    description: str | None
    status: str
    priority: str
    labels: list[LabelItem] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
