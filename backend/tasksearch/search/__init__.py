"""Query understanding, hybrid reranking and search orchestration."""

from tasksearch.search.evaluator import evaluate_expression
from tasksearch.search.orchestrator import (
    SearchOrchestrator,
    SearchOutcome,
    SearchRequest,
    TenantContext,
)
from tasksearch.search.query import (
    BooleanOperator,
    Condition,
    ConditionKind,
    Expression,
    infer_status_from_query,
    parse_query_expression,
    tokenize_query,
)
from tasksearch.search.rerank import lexical_coverage, rerank_candidates

__all__ = [
    "BooleanOperator",
    "Condition",
    "ConditionKind",
    "Expression",
    "SearchOrchestrator",
    "SearchOutcome",
    "SearchRequest",
    "TenantContext",
    "evaluate_expression",
    "infer_status_from_query",
    "lexical_coverage",
    "parse_query_expression",
    "rerank_candidates",
    "tokenize_query",
]
