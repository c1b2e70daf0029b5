"""Evaluate parsed query expressions against candidate task rows."""

from tasksearch.search.query import BooleanOperator, Condition, ConditionKind, Expression
from tasksearch.search.schemas import CandidateRow


def _condition_matches(row: CandidateRow, condition: Condition) -> bool:
    if condition.kind is ConditionKind.STATUS:
        return (row.status or "").upper() == condition.value

    term = condition.value.lower()
    return (
        term in (row.title or "").lower()
        or term in (row.project_name or "").lower()
        or term in (row.priority or "").lower()
    )


def evaluate_expression(row: CandidateRow, expression: Expression) -> bool:
    """Check whether a row satisfies the expression.

    Conditions are folded strictly left to right without precedence, so
    ``a or b and c`` evaluates as ``(a or b) and c``. An expression without
    conditions matches every row.
    """
    if not expression.conditions:
        return True

    values = [_condition_matches(row, condition) for condition in expression.conditions]
    result = values[0]
    for index, value in enumerate(values[1:], start=1):
        if index - 1 < len(expression.operators):
            operator = expression.operators[index - 1]
        else:
            operator = BooleanOperator.AND
        if operator is BooleanOperator.OR:
            result = result or value
        else:
            result = result and value
    return result
