"""Candidate retrievers for task search.

The orchestrator depends only on the ``EmbeddingRetriever`` and
``KeywordRetriever`` protocols; the classes below implement them on top of
the task store (PostgreSQL + pgvector).
"""

from typing import Any, Protocol, Sequence

import structlog
from sqlalchemy import Float, Select, case, cast, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasksearch.models.task import Project, Task, TaskEmbedding
from tasksearch.search.schemas import CandidateRow
from tasksearch.services.embedding import EmbeddingService

logger = structlog.get_logger()

# Tiered keyword scores, best field first
SCORE_TITLE_MATCH = 0.95
SCORE_PROJECT_MATCH = 0.9
SCORE_DESCRIPTION_MATCH = 0.75
SCORE_STATUS_MATCH = 0.72
SCORE_PRIORITY_MATCH = 0.71
SCORE_DUE_DATE_MATCH = 0.7
SCORE_OTHER_MATCH = 0.6


class EmbeddingRetriever(Protocol):
    async def fetch(
        self,
        tenant_id: str,
        query_text: str,
        project_id: str | None,
        status: str | None,
        limit: int,
    ) -> list[CandidateRow]:
        """Return the tasks closest to the query, ``score`` holding similarity."""
        ...


class KeywordRetriever(Protocol):
    async def fetch(
        self,
        tenant_id: str,
        patterns: Sequence[str],
        project_id: str | None,
        status: str | None,
        limit: int,
    ) -> list[CandidateRow]:
        """Return tasks literally matching any pattern, with a heuristic score."""
        ...


class TimezoneProvider(Protocol):
    async def __call__(self, tenant_id: str) -> str: ...


def _to_candidate(row: Any) -> CandidateRow:
    return CandidateRow(
        id=str(row.id),
        title=row.title,
        status=row.status,
        priority=row.priority,
        due_date=row.due_date.isoformat() if row.due_date else None,
        project_id=str(row.project_id) if row.project_id else None,
        project_name=row.project_name,
        score=float(row.score),
    )


def _scope(
    query: Select,
    tenant_id: str,
    project_id: str | None,
    status: str | None,
) -> Select:
    query = query.where(Task.tenant_id == tenant_id)
    if project_id:
        query = query.where(Task.project_id == project_id)
    if status:
        query = query.where(Task.status == status)
    return query


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PgVectorTaskRetriever:
    """Semantic retrieval over ``task_embeddings`` using cosine distance."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService,
    ):
        self.session_factory = session_factory
        self.embedding_service = embedding_service

    async def fetch(
        self,
        tenant_id: str,
        query_text: str,
        project_id: str | None,
        status: str | None,
        limit: int,
    ) -> list[CandidateRow]:
        query_embedding = await self.embedding_service.generate_embedding(query_text)
        distance = TaskEmbedding.embedding.cosine_distance(query_embedding)

        query = (
            select(
                Task.id,
                Task.title,
                Task.status,
                Task.priority,
                Task.due_date,
                Task.project_id,
                Project.name.label("project_name"),
                (1 - distance).label("score"),
            )
            .select_from(TaskEmbedding)
            .join(Task, Task.id == TaskEmbedding.task_id)
            .outerjoin(Project, Project.id == Task.project_id)
            .where(TaskEmbedding.tenant_id == tenant_id)
            .order_by(distance)
            .limit(limit)
        )
        query = _scope(query, tenant_id, project_id, status)

        async with self.session_factory() as session:
            result = await session.execute(query)
            rows = [_to_candidate(row) for row in result.all()]

        logger.debug("semantic_candidates_fetched", tenant_id=tenant_id, count=len(rows))
        return rows


class KeywordTaskRetriever:
    """Literal ILIKE retrieval with tiered field scores.

    A task qualifies when any pattern occurs in its title, description,
    project name, status, priority or due date (``YYYY-MM-DD``). Its score is
    the tier of the best matching field; ties are broken by recency.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch(
        self,
        tenant_id: str,
        patterns: Sequence[str],
        project_id: str | None,
        status: str | None,
        limit: int,
    ) -> list[CandidateRow]:
        if not patterns:
            return []
        like_patterns = [f"%{escape_like(pattern)}%" for pattern in patterns]

        def matches(column: Any) -> Any:
            return or_(*[column.ilike(p, escape="\\") for p in like_patterns])

        project_name = func.coalesce(Project.name, "")
        description = func.coalesce(Task.description, "")
        due_date_text = func.to_char(Task.due_date, "YYYY-MM-DD")

        score = case(
            (matches(Task.title), literal(SCORE_TITLE_MATCH)),
            (matches(project_name), literal(SCORE_PROJECT_MATCH)),
            (matches(description), literal(SCORE_DESCRIPTION_MATCH)),
            (matches(Task.status), literal(SCORE_STATUS_MATCH)),
            (matches(Task.priority), literal(SCORE_PRIORITY_MATCH)),
            (matches(due_date_text), literal(SCORE_DUE_DATE_MATCH)),
            else_=literal(SCORE_OTHER_MATCH),
        )
        score = cast(score, Float).label("score")

        query = (
            select(
                Task.id,
                Task.title,
                Task.status,
                Task.priority,
                Task.due_date,
                Task.project_id,
                Project.name.label("project_name"),
                score,
            )
            .select_from(Task)
            .outerjoin(Project, Project.id == Task.project_id)
            .where(
                or_(
                    matches(Task.title),
                    matches(description),
                    matches(project_name),
                    matches(Task.status),
                    matches(Task.priority),
                    matches(due_date_text),
                )
            )
            .order_by(score.desc(), Task.updated_at.desc())
            .limit(limit)
        )
        query = _scope(query, tenant_id, project_id, status)

        async with self.session_factory() as session:
            result = await session.execute(query)
            rows = [_to_candidate(row) for row in result.all()]

        logger.debug("keyword_candidates_fetched", tenant_id=tenant_id, count=len(rows))
        return rows
