"""Query understanding for task search.

Turns a free-text query into search tokens, an optional inferred status
filter and a small boolean ``Expression`` of status/term conditions.

Examples:
    >>> parse_query_expression("find todo").conditions
    (Condition(kind=<ConditionKind.STATUS: 'status'>, value='TODO'),)
    >>> parse_query_expression("todo and api").operators
    (<BooleanOperator.AND: 'and'>,)
"""

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

SEARCH_STOPWORDS: frozenset[str] = frozenset(
    {
        "the",
        "and",
        "or",
        "for",
        "with",
        "from",
        "find",
        "task",
        "tasks",
        "status",
        "is",
    }
)

STATUS_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "todo": "TODO",
        "to-do": "TODO",
        "open": "TODO",
        "pending": "TODO",
        "inprogress": "IN_PROGRESS",
        "in-progress": "IN_PROGRESS",
        "progress": "IN_PROGRESS",
        "review": "IN_REVIEW",
        "blocked": "BLOCKED",
        "done": "DONE",
        "completed": "DONE",
        "complete": "DONE",
        "cancelled": "CANCELLED",
        "canceled": "CANCELLED",
    }
)

MIN_TOKEN_LENGTH = 2

_IN_PROGRESS_RE = re.compile(r"\bin\s+progress\b")
_DISALLOWED_CHARS_RE = re.compile(r"[^a-z0-9\-_ ]+")
_BOOLEAN_WORD_RE = re.compile(r"\s(and|or)\s")
_BOOLEAN_SPLIT_RE = re.compile(r"\s+(and|or)\s+")


class ConditionKind(str, Enum):
    """What a single query condition matches against."""

    STATUS = "status"
    TERM = "term"


class BooleanOperator(str, Enum):
    """Operator joining two adjacent conditions."""

    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class Condition:
    """An atomic predicate: a canonical status or a free-text term."""

    kind: ConditionKind
    value: str

    @classmethod
    def from_token(cls, token: str) -> "Condition":
        status = resolve_status_alias(token)
        if status:
            return cls(ConditionKind.STATUS, status)
        return cls(ConditionKind.TERM, token)


@dataclass(frozen=True)
class Expression:
    """Parsed query: conditions folded left to right by ``operators``.

    Attributes:
        conditions: Conditions in query order
        operators: One operator per gap between conditions in boolean mode,
            empty in implicit-AND mode
        has_boolean_operators: Whether the query used ``and``/``or`` words
    """

    conditions: tuple[Condition, ...] = ()
    operators: tuple[BooleanOperator, ...] = ()
    has_boolean_operators: bool = False


def normalize_query(query: str) -> str:
    """Lower-case, collapse "in progress" and strip unsupported characters."""
    normalized = _IN_PROGRESS_RE.sub("inprogress", query.lower())
    return _DISALLOWED_CHARS_RE.sub(" ", normalized)


def _filter_tokens(words: list[str]) -> list[str]:
    return [
        word
        for word in words
        if len(word) >= MIN_TOKEN_LENGTH and word not in SEARCH_STOPWORDS
    ]


def tokenize_query(query: str) -> list[str]:
    """Split a query into search tokens, dropping stopwords and short words."""
    return _filter_tokens(normalize_query(query).split())


def resolve_status_alias(token: str) -> str | None:
    """Map a single word to its canonical task status, if it is an alias."""
    return STATUS_ALIASES.get(token)


def infer_status_from_query(query: str) -> str | None:
    """Return the canonical status of the first status word in the query."""
    for word in normalize_query(query).split():
        status = resolve_status_alias(word)
        if status:
            return status
    return None


def parse_query_expression(query: str) -> Expression:
    """Parse a free-text query into a boolean condition expression.

    Without a standalone ``and``/``or`` word every surviving token becomes a
    condition and all of them are implicitly ANDed. Otherwise the query is
    split on the operator words and each token is joined to the previous
    condition by the operator that preceded its part (``and`` by default),
    tokens within one part being joined by ``and``.
    """
    normalized = normalize_query(query).strip()

    if not _BOOLEAN_WORD_RE.search(normalized):
        conditions = tuple(Condition.from_token(token) for token in tokenize_query(normalized))
        return Expression(conditions=conditions)

    conditions: list[Condition] = []
    operators: list[BooleanOperator] = []
    pending: BooleanOperator | None = None

    for part in _BOOLEAN_SPLIT_RE.split(normalized):
        part = part.strip()
        if not part:
            continue
        if part in ("and", "or"):
            pending = BooleanOperator(part)
            continue
        for index, token in enumerate(_filter_tokens(part.split())):
            if conditions:
                if index == 0 and pending is not None:
                    operators.append(pending)
                else:
                    operators.append(BooleanOperator.AND)
            conditions.append(Condition.from_token(token))
            pending = None

    return Expression(
        conditions=tuple(conditions),
        operators=tuple(operators),
        has_boolean_operators=True,
    )
