"""
Predicate trees gating automations and actions.

A predicate is either a comparison leaf::

    {"field": "status", "compare": "equals", "value": "active"}

or a group of predicates::

    {"operator": "AND", "conditions": [...]}
"""

from enum import Enum
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from automation_engine.errors import ConditionEvaluationError


class CompareOperator(str, Enum):
    EQUALS = "equals"
    NOT = "not"
    IN = "in"
    GTE = "gte"
    LTE = "lte"


class GroupOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class ComparisonPredicate(BaseModel):
    """Compares one field of the record or event data against a value."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    field: str
    # Unrecognized operators are kept and evaluate permissively
    compare: str | None = None
    value: Any = None


class GroupPredicate(BaseModel):
    """Combines child predicates with AND or OR."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    operator: str = Field(validation_alias=AliasChoices("operator", "type"))
    conditions: list[Union["GroupPredicate", ComparisonPredicate, None]] = Field(
        validation_alias=AliasChoices("conditions", "children")
    )


Predicate = GroupPredicate | ComparisonPredicate

GroupPredicate.model_rebuild()


def parse_predicate(raw: Any) -> Predicate | None:  # noqa: ANN401
    """
    Validate a stored predicate.

    Returns:
        The parsed predicate, or None for an absent predicate.

    Raises:
        ConditionEvaluationError: If the structure is malformed.
    """
    if raw is None:
        return None
    if isinstance(raw, (GroupPredicate, ComparisonPredicate)):
        return raw
    if not isinstance(raw, dict):
        raise ConditionEvaluationError(
            f"Predicate must be an object, got {type(raw).__name__}"
        )

    try:
        if "conditions" in raw or "children" in raw:
            return GroupPredicate.model_validate(raw)
        return ComparisonPredicate.model_validate(raw)
    except PydanticValidationError as e:
        raise ConditionEvaluationError(f"Malformed predicate: {e}") from e
