from pydantic import BaseModel, Field

from app.gateway.types import AiEndpoint


class SummaryResponse(BaseModel):
    summary: str
    remaining_requests: int


class SuggestionsResponse(BaseModel):
    suggestions: str
    remaining_requests: int


class DuplicateDetectionRequest(BaseModel):
    project_id: int
    title: str = Field(min_length=1, max_length=500)
    description: str | None = Field(None, max_length=20_000)


class DuplicateItem(BaseModel):
    id: int
    similarity: float = Field(ge=0, le=1)
    reason: str = ""


class DuplicateDetectionResponse(BaseModel):
    duplicates: list[DuplicateItem]


class AutoLabelRequest(BaseModel):
    issue_id: int
    project_id: int


class LabelItem(BaseModel):
    id: int
    name: str
    color: str

    model_config = {"from_attributes": True}


class AutoLabelResponse(BaseModel):
    labels: list[LabelItem]


class RemainingRequestsResponse(BaseModel):
    endpoint: AiEndpoint
    remaining_requests: int


class ReinitializeResponse(BaseModel):
    active_provider: str | None
    status: str
    fallback_used: bool
