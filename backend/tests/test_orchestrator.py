"""
Tests for the search orchestrator state machine
"""
import asyncio

import pytest
from conftest import OTHER_TENANT_ID, TENANT_ID, TENANT_TIMEZONE, FakeRetriever, make_row

from tasksearch.search.exceptions import SearchValidationError, TenantAuthorizationError
from tasksearch.search.orchestrator import (
    UNAVAILABLE_MESSAGE,
    SearchRequest,
    TenantContext,
    clamp_limit,
    normalize_status,
)

CONTEXT = TenantContext(tenant_id=TENANT_ID, user_id="user-1")


async def test_semantic_results_are_reranked(make_orchestrator):
    semantic = FakeRetriever(
        rows=[
            make_row("t-1", "Onboarding checklist", score=0.8),
            make_row("t-2", "Payroll export", score=0.9),
        ]
    )
    keyword = FakeRetriever()
    orchestrator = make_orchestrator(semantic, keyword)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "semantic"
    assert [r.id for r in outcome.results] == ["t-1"]
    assert outcome.tenant_id == TENANT_ID
    assert outcome.timezone == TENANT_TIMEZONE
    # single token, no boolean operators: no keyword supplement
    assert keyword.calls == []


async def test_multi_token_query_merges_keyword_supplement(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "API cleanup", score=0.7)])
    keyword = FakeRetriever(
        rows=[
            make_row("t-1", "API cleanup", score=0.95),
            make_row("k-2", "Cleanup API docs", score=0.95),
            make_row("k-3", "Cleanup garage", score=0.95),
        ]
    )
    orchestrator = make_orchestrator(semantic, keyword)

    outcome = await orchestrator.search(SearchRequest(query="api cleanup"), CONTEXT)

    assert outcome.mode == "semantic"
    assert [r.id for r in outcome.results] == ["t-1", "k-2"]
    assert [r.match_type for r in outcome.results] == ["semantic", "keyword"]
    assert keyword.calls[0]["query"] == ["api", "cleanup"]
    assert keyword.calls[0]["limit"] == 60


async def test_supplement_is_capped_at_limit(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "API cleanup", score=0.7)])
    keyword = FakeRetriever(
        rows=[make_row(f"k-{i}", "Cleanup API docs", score=0.95) for i in range(5)]
    )
    orchestrator = make_orchestrator(semantic, keyword)

    outcome = await orchestrator.search(SearchRequest(query="api cleanup", limit=3), CONTEXT)

    assert [r.id for r in outcome.results] == ["t-1", "k-0", "k-1"]


async def test_boolean_query_runs_retrievals_concurrently(make_orchestrator):
    keyword_started = asyncio.Event()

    async def keyword_first():
        keyword_started.set()

    # semantic only returns once the keyword call has started
    semantic = FakeRetriever(
        rows=[make_row("t-1", "Polish settings", status="IN_REVIEW", score=0.9)],
        before_return=keyword_started.wait,
    )
    keyword = FakeRetriever(before_return=keyword_first)
    orchestrator = make_orchestrator(semantic, keyword, semantic_timeout_seconds=0.5)

    outcome = await orchestrator.search(SearchRequest(query="polish or todo"), CONTEXT)

    assert outcome.mode == "semantic"
    assert [r.id for r in outcome.results] == ["t-1"]


async def test_semantic_failure_falls_back_to_keyword(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("embedding model down"))
    keyword = FakeRetriever(
        rows=[
            make_row("k-1", "Onboarding checklist", score=0.95),
            make_row("k-2", "Onboarding retro", status="DONE", score=0.72),
        ]
    )
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "keyword-fallback"
    assert [r.id for r in outcome.results] == ["k-1", "k-2"]
    assert all(r.match_type == "keyword" for r in outcome.results)
    assert all(r.semantic_score is None for r in outcome.results)
    assert len(keyword.calls) == 1


async def test_fallback_reuses_prefetched_keyword_rows(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("embedding model down"))
    keyword = FakeRetriever(rows=[make_row("k-1", "API cleanup", score=0.95)])
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="api cleanup"), CONTEXT)

    assert outcome.mode == "keyword-fallback"
    assert [r.id for r in outcome.results] == ["k-1"]
    assert len(keyword.calls) == 1


async def test_fallback_applies_expression(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("boom"))
    keyword = FakeRetriever(
        rows=[
            make_row("k-1", "API cleanup", status="TODO"),
            make_row("k-2", "API cleanup", status="DONE"),
        ]
    )
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="todo and api"), CONTEXT)

    assert [r.id for r in outcome.results] == ["k-1"]


async def test_semantic_failure_without_fallback_is_unavailable(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("connection refused to 10.0.0.5"))
    keyword = FakeRetriever(rows=[make_row("k-1", "Onboarding", score=0.95)])
    orchestrator = make_orchestrator(semantic, keyword)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.unavailable
    assert outcome.results == []
    assert outcome.message == UNAVAILABLE_MESSAGE
    assert "10.0.0.5" not in outcome.message


async def test_semantic_timeout_is_treated_as_failure(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "Onboarding")], delay=1.0)
    keyword = FakeRetriever(rows=[make_row("k-1", "Onboarding", score=0.95)])
    orchestrator = make_orchestrator(
        semantic, keyword, semantic_timeout_seconds=0.01, allow_keyword_fallback=True
    )

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "keyword-fallback"
    assert [r.id for r in outcome.results] == ["k-1"]
    assert semantic.cancelled is True
    assert len(semantic.calls) == 1


async def test_keyword_fallback_failure_is_unavailable(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("embedding model down"))
    keyword = FakeRetriever(error=RuntimeError("database down"))
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "semantic-unavailable"


async def test_failed_supplement_is_not_retried_after_semantic_failure(make_orchestrator):
    semantic = FakeRetriever(error=RuntimeError("embedding model down"))
    keyword = FakeRetriever(error=RuntimeError("database down"))
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="api polish"), CONTEXT)

    assert outcome.mode == "semantic-unavailable"
    assert len(keyword.calls) == 1


async def test_failed_supplement_is_not_retried_when_rerank_keeps_nothing(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "API polish", score=0.1)])
    keyword = FakeRetriever(error=RuntimeError("database down"))
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="api polish"), CONTEXT)

    assert outcome.mode == "semantic-empty"
    assert outcome.results == []
    assert len(keyword.calls) == 1


async def test_supplement_failure_serves_semantic_results(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "API cleanup", score=0.7)])
    keyword = FakeRetriever(error=RuntimeError("database down"))
    orchestrator = make_orchestrator(semantic, keyword)

    outcome = await orchestrator.search(SearchRequest(query="api cleanup"), CONTEXT)

    assert outcome.mode == "semantic"
    assert [r.id for r in outcome.results] == ["t-1"]


async def test_empty_semantic_results(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "Payroll export", score=0.9)])
    orchestrator = make_orchestrator(semantic)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "semantic-empty"
    assert outcome.results == []


async def test_empty_semantic_results_fall_back_when_allowed(make_orchestrator):
    semantic = FakeRetriever(rows=[])
    keyword = FakeRetriever(rows=[make_row("k-1", "Onboarding", score=0.95)])
    orchestrator = make_orchestrator(semantic, keyword, allow_keyword_fallback=True)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "keyword-fallback"
    assert [r.id for r in outcome.results] == ["k-1"]


async def test_semantic_disabled_uses_keyword_only(make_orchestrator):
    semantic = FakeRetriever(rows=[make_row("t-1", "Onboarding")])
    keyword = FakeRetriever(rows=[make_row("k-1", "Onboarding", score=0.95)])
    orchestrator = make_orchestrator(
        semantic, keyword, semantic_search_enabled=False, allow_keyword_fallback=True
    )

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.mode == "keyword-fallback"
    assert semantic.calls == []


async def test_semantic_disabled_without_fallback_is_unavailable(make_orchestrator):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic, semantic_search_enabled=False)

    outcome = await orchestrator.search(SearchRequest(query="onboarding"), CONTEXT)

    assert outcome.unavailable
    assert semantic.calls == []


async def test_inferred_status_scopes_retrieval(make_orchestrator):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic)

    outcome = await orchestrator.search(SearchRequest(query="todo onboarding"), CONTEXT)

    assert semantic.calls[0]["status"] == "TODO"
    assert outcome.status == "TODO"


async def test_boolean_query_does_not_infer_status(make_orchestrator):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic)

    await orchestrator.search(SearchRequest(query="onboarding or todo"), CONTEXT)

    assert semantic.calls[0]["status"] is None


async def test_explicit_status_wins_over_inferred(make_orchestrator):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic)

    await orchestrator.search(
        SearchRequest(query="todo onboarding", status="done", project_id="p-9"), CONTEXT
    )

    assert semantic.calls[0]["status"] == "DONE"
    assert semantic.calls[0]["project_id"] == "p-9"
    assert semantic.calls[0]["tenant_id"] == TENANT_ID


@pytest.mark.parametrize("limit,fetch_limit", [(20, 60), (500, 150), (0, 3)])
async def test_semantic_overfetch_uses_clamped_limit(make_orchestrator, limit, fetch_limit):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic)

    await orchestrator.search(SearchRequest(query="onboarding", limit=limit), CONTEXT)

    assert semantic.calls[0]["limit"] == fetch_limit


async def test_short_query_is_rejected_before_retrieval(make_orchestrator):
    semantic = FakeRetriever()
    orchestrator = make_orchestrator(semantic)

    with pytest.raises(SearchValidationError):
        await orchestrator.search(SearchRequest(query=" a "), CONTEXT)
    assert semantic.calls == []


async def test_missing_tenant_context_is_rejected(make_orchestrator):
    orchestrator = make_orchestrator()

    with pytest.raises(TenantAuthorizationError) as exc_info:
        await orchestrator.search(SearchRequest(query="onboarding"), TenantContext(tenant_id=None))
    assert exc_info.value.status_code == 401


@pytest.mark.parametrize(
    "request_tenant,header_tenant",
    [(OTHER_TENANT_ID, None), (None, OTHER_TENANT_ID), (TENANT_ID, OTHER_TENANT_ID)],
)
async def test_tenant_mismatch_is_rejected_before_retrieval(
    make_orchestrator, request_tenant, header_tenant
):
    semantic = FakeRetriever()
    keyword = FakeRetriever()
    orchestrator = make_orchestrator(semantic, keyword)
    context = TenantContext(tenant_id=TENANT_ID, header_tenant_id=header_tenant)

    with pytest.raises(TenantAuthorizationError) as exc_info:
        await orchestrator.search(
            SearchRequest(query="onboarding", tenant_id=request_tenant), context
        )
    assert exc_info.value.status_code == 403
    assert semantic.calls == []
    assert keyword.calls == []


async def test_matching_tenants_are_accepted(make_orchestrator):
    orchestrator = make_orchestrator()
    context = TenantContext(tenant_id=TENANT_ID, header_tenant_id=TENANT_ID)

    outcome = await orchestrator.search(
        SearchRequest(query="onboarding", tenant_id=TENANT_ID), context
    )

    assert outcome.tenant_id == TENANT_ID


async def test_cancellation_aborts_inflight_calls(make_orchestrator):
    semantic = FakeRetriever(delay=5.0)
    keyword = FakeRetriever(delay=5.0)
    orchestrator = make_orchestrator(
        semantic, keyword, semantic_timeout_seconds=10.0, keyword_timeout_seconds=10.0
    )

    task = asyncio.create_task(orchestrator.search(SearchRequest(query="api cleanup"), CONTEXT))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert semantic.cancelled is True
    assert keyword.cancelled is True


def test_clamp_limit():
    assert clamp_limit(0) == 1
    assert clamp_limit(20) == 20
    assert clamp_limit(51) == 50


@pytest.mark.parametrize(
    "value,expected",
    [("done", "DONE"), ("In Progress", "IN_PROGRESS"), ("in-progress", "IN_PROGRESS"),
     ("BLOCKED", "BLOCKED"), ("", None), (None, None)],
)
def test_normalize_status(value, expected):
    assert normalize_status(value) == expected
