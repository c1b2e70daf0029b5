"""Hybrid task search orchestration.

Sequences one search request:

1. check the tenant scope and validate the query
2. parse the query into tokens, an expression and a status filter
3. fetch semantic candidates, plus keyword candidates for multi-term or
   boolean queries, concurrently and each under its own timeout
4. rerank the semantic candidates and merge in the keyword supplement
5. fall back to keyword-only results when semantic retrieval is disabled,
   fails or finds nothing, if configuration allows it

Upstream failures never propagate past this module: they are logged and
turned into a degraded ``SearchOutcome``.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field

import structlog

from tasksearch.config import Settings, get_settings
from tasksearch.search.evaluator import evaluate_expression
from tasksearch.search.exceptions import (
    SearchValidationError,
    TenantAuthorizationError,
    UpstreamUnavailableError,
)
from tasksearch.search.query import (
    Expression,
    infer_status_from_query,
    parse_query_expression,
    resolve_status_alias,
    tokenize_query,
)
from tasksearch.search.rerank import rerank_candidates
from tasksearch.search.retrievers import EmbeddingRetriever, KeywordRetriever, TimezoneProvider
from tasksearch.search.schemas import CandidateRow, RankedResult, SearchMode

logger = structlog.get_logger()

MIN_QUERY_LENGTH = 2
MIN_LIMIT = 1
MAX_LIMIT = 50

UNAVAILABLE_MESSAGE = (
    "Semantic search model is unavailable. Configure embedding model and task embeddings."
)


@dataclass
class TenantContext:
    """Tenant identity of the caller.

    Attributes:
        tenant_id: Tenant from the authenticated token (authoritative)
        user_id: Authenticated user, for logging only
        header_tenant_id: Tenant declared in the ``X-Tenant-ID`` header
    """

    tenant_id: str | None
    user_id: str | None = None
    header_tenant_id: str | None = None


@dataclass
class SearchRequest:
    query: str
    limit: int = 20
    project_id: str | None = None
    status: str | None = None
    tenant_id: str | None = None


@dataclass
class SearchOutcome:
    """Result of one search, with the path that served it."""

    results: list[RankedResult]
    mode: SearchMode
    query: str
    tenant_id: str
    timezone: str
    status: str | None = None
    message: str | None = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def unavailable(self) -> bool:
        return self.mode == "semantic-unavailable"


@dataclass
class _SearchPlan:
    """Request-scoped parse of a validated search."""

    query: str
    tenant_id: str
    timezone: str
    limit: int
    project_id: str | None
    status: str | None
    expression: Expression
    tokens: list[str]
    patterns: list[str] = field(default_factory=list)

    @property
    def needs_keyword_supplement(self) -> bool:
        return self.expression.has_boolean_operators or len(self.tokens) > 1


def clamp_limit(limit: int) -> int:
    return max(MIN_LIMIT, min(MAX_LIMIT, limit))


def normalize_status(status: str | None) -> str | None:
    """Map an explicit status filter to its canonical value."""
    if not status or not status.strip():
        return None
    value = status.strip()
    return resolve_status_alias(value.lower()) or value.upper().replace(" ", "_").replace("-", "_")


def merge_keyword_results(
    ranked: list[RankedResult],
    keyword_results: list[RankedResult],
    limit: int,
) -> list[RankedResult]:
    """Append keyword results not already present, capped at ``limit``."""
    merged = list(ranked)
    seen = {result.id for result in merged}
    for result in keyword_results:
        if result.id in seen:
            continue
        merged.append(result)
        seen.add(result.id)
    return merged[:limit]


class SearchOrchestrator:
    """Runs the hybrid semantic/keyword task search pipeline."""

    def __init__(
        self,
        embedding_retriever: EmbeddingRetriever,
        keyword_retriever: KeywordRetriever,
        timezone_provider: TimezoneProvider,
        settings: Settings | None = None,
    ):
        self.embedding_retriever = embedding_retriever
        self.keyword_retriever = keyword_retriever
        self.timezone_provider = timezone_provider
        self.settings = settings or get_settings()

    async def search(self, request: SearchRequest, context: TenantContext) -> SearchOutcome:
        """Search the caller's tasks.

        Raises:
            SearchValidationError: If the query is too short.
            TenantAuthorizationError: If the tenant context is missing or
                the request names a different tenant.
        """
        tenant_id = self._resolve_tenant(request, context)
        if len(request.query.strip()) < MIN_QUERY_LENGTH:
            raise SearchValidationError(
                f"Query must be at least {MIN_QUERY_LENGTH} characters"
            )
        plan = await self._plan(request, tenant_id)

        log = logger.bind(
            tenant_id=tenant_id,
            boolean=plan.expression.has_boolean_operators,
            token_count=len(plan.tokens),
        )

        if not self.settings.semantic_search_enabled:
            log.info("semantic_search_disabled")
            if self.settings.allow_keyword_fallback:
                return await self._keyword_fallback(plan)
            return self._unavailable(plan)

        semantic_call = self._guarded(
            "embedding",
            self.embedding_retriever.fetch(
                tenant_id,
                plan.query,
                plan.project_id,
                plan.status,
                self._semantic_fetch_limit(plan.limit),
            ),
            self.settings.semantic_timeout_seconds,
        )

        keyword_rows: list[CandidateRow] | None = None
        keyword_error: UpstreamUnavailableError | None = None
        semantic_error: UpstreamUnavailableError | None = None
        semantic_rows: list[CandidateRow] = []

        if plan.needs_keyword_supplement:
            semantic_result, keyword_result = await asyncio.gather(
                semantic_call,
                self._fetch_keyword(plan),
                return_exceptions=True,
            )
            for result in (semantic_result, keyword_result):
                if isinstance(result, BaseException) and not isinstance(
                    result, UpstreamUnavailableError
                ):
                    raise result
            if isinstance(keyword_result, UpstreamUnavailableError):
                keyword_error = keyword_result
            else:
                keyword_rows = keyword_result
            if isinstance(semantic_result, UpstreamUnavailableError):
                semantic_error = semantic_result
            else:
                semantic_rows = semantic_result
        else:
            try:
                semantic_rows = await semantic_call
            except UpstreamUnavailableError as e:
                semantic_error = e

        if semantic_error is not None:
            log.warning("semantic_search_failed", error=semantic_error.message)
            if self.settings.allow_keyword_fallback and keyword_error is None:
                return await self._keyword_fallback(plan, prefetched=keyword_rows)
            return self._unavailable(plan)

        results = rerank_candidates(
            semantic_rows,
            plan.query,
            plan.expression,
            plan.tokens,
            plan.status,
            plan.limit,
        )
        log.info(
            "semantic_candidates_reranked",
            candidates=len(semantic_rows),
            kept=len(results),
        )

        if keyword_error is not None:
            log.warning("keyword_supplement_failed", error=keyword_error.message)
        elif keyword_rows is not None:
            results = merge_keyword_results(
                results, self._filter_keyword_rows(keyword_rows, plan), plan.limit
            )

        if not results:
            # a keyword call that already failed is not attempted again
            if self.settings.allow_keyword_fallback and keyword_error is None:
                return await self._keyword_fallback(plan, prefetched=keyword_rows)
            log.info("semantic_search_empty")
            return self._outcome(plan, [], "semantic-empty")

        return self._outcome(plan, results, "semantic")

    def _resolve_tenant(self, request: SearchRequest, context: TenantContext) -> str:
        authenticated = context.tenant_id
        if not authenticated:
            raise TenantAuthorizationError("Missing tenant context", status_code=401)
        for claimed in (request.tenant_id, context.header_tenant_id):
            if claimed and claimed != authenticated:
                logger.warning(
                    "tenant_mismatch",
                    tenant_id=authenticated,
                    claimed_tenant_id=claimed,
                    user_id=context.user_id,
                )
                raise TenantAuthorizationError("Tenant mismatch in request context")
        return authenticated

    async def _plan(self, request: SearchRequest, tenant_id: str) -> _SearchPlan:
        query = request.query
        expression = parse_query_expression(query)
        tokens = tokenize_query(query)

        status = normalize_status(request.status)
        if status is None and not expression.has_boolean_operators:
            status = infer_status_from_query(query)

        timezone = await self.timezone_provider(tenant_id)

        return _SearchPlan(
            query=query,
            tenant_id=tenant_id,
            timezone=timezone,
            limit=clamp_limit(request.limit),
            project_id=request.project_id or None,
            status=status,
            expression=expression,
            tokens=tokens,
            patterns=tokens or [query],
        )

    def _semantic_fetch_limit(self, limit: int) -> int:
        return min(
            limit * self.settings.semantic_overfetch_factor,
            self.settings.semantic_max_candidates,
        )

    async def _guarded(
        self,
        source: str,
        call: Awaitable[list[CandidateRow]],
        timeout: float,
    ) -> list[CandidateRow]:
        """Await one upstream call under a timeout, without retries."""
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(source, f"timed out after {timeout}s") from e
        except Exception as e:
            raise UpstreamUnavailableError(source, str(e) or type(e).__name__) from e

    async def _fetch_keyword(self, plan: _SearchPlan) -> list[CandidateRow]:
        return await self._guarded(
            "keyword",
            self.keyword_retriever.fetch(
                plan.tenant_id,
                plan.patterns,
                plan.project_id,
                plan.status,
                plan.limit * self.settings.keyword_overfetch_factor,
            ),
            self.settings.keyword_timeout_seconds,
        )

    def _filter_keyword_rows(
        self, rows: list[CandidateRow], plan: _SearchPlan
    ) -> list[RankedResult]:
        return [
            RankedResult(**row.model_dump(), match_type="keyword")
            for row in rows
            if evaluate_expression(row, plan.expression)
        ]

    async def _keyword_fallback(
        self,
        plan: _SearchPlan,
        prefetched: list[CandidateRow] | None = None,
    ) -> SearchOutcome:
        rows = prefetched
        if rows is None:
            try:
                rows = await self._fetch_keyword(plan)
            except UpstreamUnavailableError as e:
                logger.warning(
                    "keyword_fallback_failed", tenant_id=plan.tenant_id, error=e.message
                )
                return self._unavailable(plan)

        results = self._filter_keyword_rows(rows, plan)[: plan.limit]
        logger.info("keyword_fallback_served", tenant_id=plan.tenant_id, count=len(results))
        return self._outcome(plan, results, "keyword-fallback")

    def _outcome(
        self, plan: _SearchPlan, results: list[RankedResult], mode: SearchMode
    ) -> SearchOutcome:
        return SearchOutcome(
            results=results,
            mode=mode,
            query=plan.query,
            tenant_id=plan.tenant_id,
            timezone=plan.timezone,
            status=plan.status,
        )

    def _unavailable(self, plan: _SearchPlan) -> SearchOutcome:
        outcome = self._outcome(plan, [], "semantic-unavailable")
        outcome.message = UNAVAILABLE_MESSAGE
        return outcome
