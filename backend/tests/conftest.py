"""
Shared fixtures for task search tests.

Provides:
- In-memory fake retrievers recording their calls
- Candidate row factory
- Orchestrator factory with per-test settings
"""

import asyncio
from typing import Any, Callable

import pytest

from tasksearch.config import Settings
from tasksearch.search.orchestrator import SearchOrchestrator
from tasksearch.search.schemas import CandidateRow

TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"
TENANT_TIMEZONE = "Europe/Berlin"


def make_row(
    id: str,
    title: str,
    status: str = "TODO",
    score: float = 0.8,
    priority: str = "MEDIUM",
    project_name: str | None = "Project One",
    due_date: str | None = None,
) -> CandidateRow:
    return CandidateRow(
        id=id,
        title=title,
        status=status,
        priority=priority,
        due_date=due_date,
        project_id="p-1" if project_name else None,
        project_name=project_name,
        score=score,
    )


class FakeRetriever:
    """Retriever double: returns fixed rows, raises, or blocks on demand."""

    def __init__(
        self,
        rows: list[CandidateRow] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        before_return: Callable[[], Any] | None = None,
    ):
        self.rows = rows or []
        self.error = error
        self.delay = delay
        self.before_return = before_return
        self.calls: list[dict[str, Any]] = []
        self.cancelled = False

    async def fetch(self, tenant_id, query_or_patterns, project_id, status, limit):
        self.calls.append(
            {
                "tenant_id": tenant_id,
                "query": query_or_patterns,
                "project_id": project_id,
                "status": status,
                "limit": limit,
            }
        )
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.before_return is not None:
                await self.before_return()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return [row.model_copy() for row in self.rows]


async def fixed_timezone(tenant_id: str) -> str:
    return TENANT_TIMEZONE


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator around fake retrievers."""

    def factory(
        semantic: FakeRetriever | None = None,
        keyword: FakeRetriever | None = None,
        **settings_overrides: Any,
    ) -> SearchOrchestrator:
        overrides = {
            "semantic_timeout_seconds": 1.0,
            "keyword_timeout_seconds": 1.0,
            "allow_keyword_fallback": False,
            "semantic_search_enabled": True,
        }
        overrides.update(settings_overrides)
        return SearchOrchestrator(
            embedding_retriever=semantic or FakeRetriever(),
            keyword_retriever=keyword or FakeRetriever(),
            timezone_provider=fixed_timezone,
            settings=Settings(**overrides),
        )

    return factory
