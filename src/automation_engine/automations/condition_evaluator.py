"""
Evaluation of predicate trees against a run context.
"""

import logging
from collections.abc import Mapping
from typing import Any

from automation_engine.automations.predicates import (
    ComparisonPredicate,
    CompareOperator,
    GroupOperator,
    GroupPredicate,
    parse_predicate,
)

logger = logging.getLogger(__name__)


def _strict_equals(left: Any, right: Any) -> bool:  # noqa: ANN401
    # True == 1 in Python; a flag and a number are never the same value here
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    return left == right


def resolve_field(field: str, context: Mapping[str, Any]) -> Any:  # noqa: ANN401
    """Read ``field`` from the context's record, else from its event data."""
    record = context.get("record")
    source = record if record is not None else context.get("event_data")
    if isinstance(source, Mapping):
        return source.get(field)
    return None


def _compare(predicate: ComparisonPredicate, context: Mapping[str, Any]) -> bool:
    field_value = resolve_field(predicate.field, context)
    value = predicate.value

    match predicate.compare:
        case CompareOperator.EQUALS.value:
            return _strict_equals(field_value, value)
        case CompareOperator.NOT.value:
            return not _strict_equals(field_value, value)
        case CompareOperator.IN.value:
            if not isinstance(value, list):
                return False
            return any(_strict_equals(field_value, item) for item in value)
        case CompareOperator.GTE.value:
            try:
                return bool(field_value >= value)
            except TypeError:
                return False
        case CompareOperator.LTE.value:
            try:
                return bool(field_value <= value)
            except TypeError:
                return False
        case _:
            logger.debug(
                f"Unknown compare operator {predicate.compare!r}, treating as true"
            )
            return True


def _evaluate(
    predicate: GroupPredicate | ComparisonPredicate | None,
    context: Mapping[str, Any],
) -> bool:
    if predicate is None:
        return True
    if isinstance(predicate, ComparisonPredicate):
        return _compare(predicate, context)

    results = (_evaluate(child, context) for child in predicate.conditions)
    if predicate.operator == GroupOperator.AND.value:
        return all(results)
    if predicate.operator == GroupOperator.OR.value:
        return any(results)
    logger.debug(f"Unknown group operator {predicate.operator!r}, treating as true")
    return True


def evaluate(predicate: Any, context: Mapping[str, Any]) -> bool:  # noqa: ANN401
    """
    Evaluate a predicate against a run context.

    ``context`` holds ``event_data``, optionally ``record``, and the results of
    earlier steps. An absent predicate is true. AND over no children is true,
    OR over no children is false, and an unrecognized compare operator is true.

    Raises:
        ConditionEvaluationError: If the predicate structure is malformed.
    """
    return _evaluate(parse_predicate(predicate), context)
