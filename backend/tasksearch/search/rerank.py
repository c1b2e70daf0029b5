"""Hybrid reranking of semantic candidates.

The final score blends the retriever's cosine similarity with lexical
evidence from the task's visible fields:

    final = semantic * 0.65 + (coverage * 0.35 + exact_phrase_boost)

where ``coverage`` is the fraction of query tokens found in the row and the
exact phrase boost rewards rows whose title or project name contains the
whole query.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from tasksearch.search.evaluator import evaluate_expression
from tasksearch.search.query import Expression, resolve_status_alias
from tasksearch.search.schemas import CandidateRow, RankedResult

SEMANTIC_WEIGHT = 0.65
COVERAGE_WEIGHT = 0.35
EXACT_PHRASE_BOOST = 0.2
MIN_SEMANTIC_SCORE = 0.2
MIN_COVERAGE = 0.2
SCORE_PRECISION = 6


@dataclass(frozen=True)
class RerankWeights:
    """Weights and thresholds used by ``rerank_candidates``."""

    semantic_weight: float = SEMANTIC_WEIGHT
    coverage_weight: float = COVERAGE_WEIGHT
    exact_phrase_boost: float = EXACT_PHRASE_BOOST
    min_semantic_score: float = MIN_SEMANTIC_SCORE
    min_coverage: float = MIN_COVERAGE


DEFAULT_WEIGHTS = RerankWeights()


def lexical_coverage(row: CandidateRow, tokens: Sequence[str]) -> float:
    """Fraction of query tokens found in the row's searchable fields."""
    if not tokens:
        return 0.0
    haystack = " ".join(
        [
            row.title or "",
            row.project_name or "",
            row.status or "",
            row.priority or "",
            row.due_date or "",
        ]
    ).lower()
    hits = sum(1 for token in tokens if token in haystack)
    return hits / len(tokens)


def rerank_candidates(
    candidates: Iterable[CandidateRow],
    query: str,
    expression: Expression,
    tokens: Sequence[str],
    effective_status: str | None,
    limit: int,
    weights: RerankWeights = DEFAULT_WEIGHTS,
) -> list[RankedResult]:
    """Score, filter and order semantic candidates.

    A candidate is dropped when its semantic score or lexical coverage is
    below threshold, when it fails the parsed expression, or, for plain
    queries that carry a status filter plus other words, when none of those
    words appear in its title.

    Args:
        candidates: Rows from the embedding retriever, ``score`` holding
            the cosine similarity
        query: The raw query string
        expression: Parsed query expression
        tokens: Query tokens from ``tokenize_query``
        effective_status: Status filter applied to the search, if any
        limit: Maximum number of results to return
        weights: Scoring weights and thresholds

    Returns:
        Ranked results ordered by final score, highest first.
    """
    query_lower = query.lower()
    title_terms = [token for token in tokens if not resolve_status_alias(token)]
    require_title_term = (
        bool(title_terms)
        and not expression.has_boolean_operators
        and bool(effective_status)
    )

    ranked: list[RankedResult] = []
    for row in candidates:
        semantic_score = row.score
        coverage = lexical_coverage(row, tokens)
        title = (row.title or "").lower()
        project = (row.project_name or "").lower()

        if semantic_score < weights.min_semantic_score:
            continue
        if tokens and coverage < weights.min_coverage:
            continue
        if require_title_term and not any(term in title for term in title_terms):
            continue
        if not evaluate_expression(row, expression):
            continue

        phrase_boost = (
            weights.exact_phrase_boost
            if query_lower in title or query_lower in project
            else 0.0
        )
        lexical_boost = coverage * weights.coverage_weight + phrase_boost
        final_score = round(semantic_score * weights.semantic_weight + lexical_boost, SCORE_PRECISION)

        ranked.append(
            RankedResult(
                **row.model_dump(exclude={"score"}),
                score=final_score,
                semantic_score=semantic_score,
                match_type="semantic",
            )
        )

    ranked.sort(key=lambda result: result.score, reverse=True)
    return ranked[:limit]
