"""Search request/response schemas."""

from typing import Literal

from pydantic import BaseModel, Field

SearchMode = Literal["semantic", "semantic-empty", "keyword-fallback", "semantic-unavailable"]
MatchType = Literal["semantic", "keyword"]


class CandidateRow(BaseModel):
    """Task projection returned by a retriever.

    ``score`` is the cosine similarity in [0, 1] for rows from the embedding
    retriever, and the tiered heuristic score for keyword rows.
    """

    id: str
    title: str
    status: str
    priority: str
    due_date: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    score: float = 0.0


class RankedResult(CandidateRow):
    """Candidate with its final ranking score and provenance."""

    semantic_score: float | None = None
    match_type: MatchType = "semantic"


class SemanticSearchRequest(BaseModel):
    """Body of a task search request."""

    query: str = Field(..., min_length=2, description="Free-text search query")
    limit: int = Field(20, ge=1, le=50)
    project_id: str | None = Field(None, alias="projectId")
    status: str | None = None
    tenant_id: str | None = Field(None, alias="tenantId")

    class Config:
        populate_by_name = True


class SearchMeta(BaseModel):
    """Metadata describing how a search was served."""

    total: int
    query: str
    status: str | None = None
    tenant_id: str = Field(..., alias="tenantId")
    timezone: str
    mode: SearchMode

    class Config:
        populate_by_name = True


class SearchResponse(BaseModel):
    """Search results plus metadata."""

    data: list[RankedResult]
    meta: SearchMeta


class UnavailableMeta(BaseModel):
    query: str
    tenant_id: str = Field(..., alias="tenantId")
    timezone: str
    mode: SearchMode = "semantic-unavailable"

    class Config:
        populate_by_name = True


class SearchUnavailableResponse(BaseModel):
    """Body of a 503 answer when no retrieval path could serve the query."""

    error: str = "semantic_search_unavailable"
    message: str
    meta: UnavailableMeta
