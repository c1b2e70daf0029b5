"""Task search API endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import ORJSONResponse

from tasksearch.api.v1.auth import CurrentTenant
from tasksearch.config import get_settings
from tasksearch.db.session import async_session_factory
from tasksearch.search.exceptions import SearchValidationError, TenantAuthorizationError
from tasksearch.search.orchestrator import SearchOrchestrator, SearchRequest
from tasksearch.search.retrievers import KeywordTaskRetriever, PgVectorTaskRetriever
from tasksearch.search.schemas import (
    SearchMeta,
    SearchResponse,
    SearchUnavailableResponse,
    SemanticSearchRequest,
    UnavailableMeta,
)
from tasksearch.services.embedding import get_embedding_service
from tasksearch.services.tenant_timezone import TenantTimezoneService

logger = structlog.get_logger()

router = APIRouter(tags=["search"])


def get_search_orchestrator() -> SearchOrchestrator:
    """Build the orchestrator wired to the task store."""
    settings = get_settings()
    return SearchOrchestrator(
        embedding_retriever=PgVectorTaskRetriever(
            async_session_factory, get_embedding_service(settings)
        ),
        keyword_retriever=KeywordTaskRetriever(async_session_factory),
        timezone_provider=TenantTimezoneService(
            async_session_factory, default=settings.default_timezone
        ),
        settings=settings,
    )


Orchestrator = Annotated[SearchOrchestrator, Depends(get_search_orchestrator)]


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": SearchUnavailableResponse}},
)
async def semantic_search(
    body: SemanticSearchRequest,
    tenant: CurrentTenant,
    orchestrator: Orchestrator,
):
    """
    Search the caller's tasks with a free-text query.

    The query may name statuses ("todo", "in progress", "done") and combine
    terms with `and`/`or`. Results come from semantic retrieval reranked with
    lexical evidence, supplemented or replaced by keyword matches.

    `meta.mode` tells which path served the response:
    - semantic: reranked semantic results (possibly keyword-supplemented)
    - semantic-empty: semantic search ran and nothing matched
    - keyword-fallback: semantic search was unavailable or empty and keyword
      matching answered instead
    - semantic-unavailable: no path could answer (HTTP 503)
    """
    request = SearchRequest(
        query=body.query,
        limit=body.limit,
        project_id=body.project_id,
        status=body.status,
        tenant_id=body.tenant_id,
    )

    try:
        outcome = await orchestrator.search(request, tenant)
    except SearchValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except TenantAuthorizationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if outcome.unavailable:
        unavailable = SearchUnavailableResponse(
            message=outcome.message or "Search is unavailable",
            meta=UnavailableMeta(
                query=outcome.query,
                tenant_id=outcome.tenant_id,
                timezone=outcome.timezone,
            ),
        )
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=unavailable.model_dump(by_alias=True),
        )

    logger.info("task_search_completed", mode=outcome.mode, total=outcome.total)

    return SearchResponse(
        data=outcome.results,
        meta=SearchMeta(
            total=outcome.total,
            query=outcome.query,
            status=outcome.status,
            tenant_id=outcome.tenant_id,
            timezone=outcome.timezone,
            mode=outcome.mode,
        ),
    )
