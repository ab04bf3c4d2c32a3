"""
Rule Conditions
===============

Condition trees stored on automation rules and their evaluator.

A condition is a closed tree of ``simple`` comparisons joined by ``and``,
``or`` and ``not`` nodes, persisted as JSON:

    {"operator": "and", "conditions": [
        {"operator": "simple", "attribute": "priority", "comparison": "equals", "value": "high"},
        {"operator": "simple", "attribute": "tags", "comparison": "contains", "value": "vip"}
    ]}
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Number
from typing import Annotated, Any, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from deskflow.config import ConditionResult
from deskflow.core import ConditionEvaluationError


Comparison = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "greater_or_equal",
    "less_than",
    "less_or_equal",
    "in",
    "not_in",
]

ORDERING_COMPARISONS = {"greater_than", "greater_or_equal", "less_than", "less_or_equal"}
MEMBERSHIP_COMPARISONS = {"in", "not_in"}


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


class SimpleCondition(BaseModel):
    """Compares one payload attribute against a literal value."""
    operator: Literal["simple"] = "simple"
    attribute: str = Field(..., min_length=1, description="Payload key, dotted for nested values")
    comparison: Comparison
    value: Any = None

    @model_validator(mode="after")
    def validate_value(self) -> "SimpleCondition":
        if self.comparison in MEMBERSHIP_COMPARISONS and not isinstance(self.value, list):
            raise ValueError(f"'{self.comparison}' requires a list value")
        if self.comparison in ORDERING_COMPARISONS and not _is_number(self.value):
            raise ValueError(f"'{self.comparison}' requires a numeric value")
        return self


class AndCondition(BaseModel):
    operator: Literal["and"] = "and"
    conditions: List["Condition"] = Field(..., min_length=2)


class OrCondition(BaseModel):
    operator: Literal["or"] = "or"
    conditions: List["Condition"] = Field(..., min_length=2)


class NotCondition(BaseModel):
    operator: Literal["not"] = "not"
    condition: "Condition"


Condition = Annotated[
    Union[SimpleCondition, AndCondition, OrCondition, NotCondition],
    Field(discriminator="operator"),
]

AndCondition.model_rebuild()
OrCondition.model_rebuild()
NotCondition.model_rebuild()

_condition_adapter = TypeAdapter(Condition)


def parse_condition(data: Any) -> Condition:
    """Validate a stored/JSON condition tree. Raises pydantic.ValidationError."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return _condition_adapter.validate_python(data)


def dump_condition(condition: Condition) -> dict:
    return _condition_adapter.dump_python(condition, mode="json")


@dataclass(frozen=True)
class ConditionOutcome:
    """Three-valued evaluation result."""
    result: ConditionResult
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.result == ConditionResult.TRUE


_MISSING = object()


class RuleConditionEvaluator:
    """
    Evaluates condition trees against an event payload.

    ``and`` / ``or`` short-circuit left to right. A missing attribute or a
    type mismatch yields ``ConditionResult.ERROR``; nothing is raised.
    """

    def evaluate(self, condition: Condition, payload: Mapping[str, Any]) -> ConditionOutcome:
        try:
            matched = self._evaluate(condition, payload)
        except ConditionEvaluationError as e:
            return ConditionOutcome(ConditionResult.ERROR, e.message)
        return ConditionOutcome(ConditionResult.TRUE if matched else ConditionResult.FALSE)

    def _evaluate(self, condition: Condition, payload: Mapping[str, Any]) -> bool:
        if isinstance(condition, SimpleCondition):
            return self._compare(condition, payload)
        if isinstance(condition, AndCondition):
            return all(self._evaluate(c, payload) for c in condition.conditions)
        if isinstance(condition, OrCondition):
            return any(self._evaluate(c, payload) for c in condition.conditions)
        if isinstance(condition, NotCondition):
            return not self._evaluate(condition.condition, payload)
        raise ConditionEvaluationError(f"Unknown condition node: {condition!r}")

    @staticmethod
    def resolve_attribute(payload: Mapping[str, Any], path: str) -> Any:
        """
        Look up ``path`` ("priority", "contact.email") in the payload.

        Raises:
            ConditionEvaluationError: when any path segment is absent
        """
        current: Any = payload
        for part in path.split("."):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            else:
                current = getattr(current, part, _MISSING)
            if current is _MISSING:
                raise ConditionEvaluationError(f"Invalid attribute: {path}")
        return current.value if isinstance(current, Enum) else current

    def _compare(self, condition: SimpleCondition, payload: Mapping[str, Any]) -> bool:
        actual = self.resolve_attribute(payload, condition.attribute)
        expected = condition.value
        comparison = condition.comparison

        if comparison == "equals":
            return actual == expected
        if comparison == "not_equals":
            return actual != expected
        if comparison == "contains":
            return self._contains(condition.attribute, actual, expected)
        if comparison in MEMBERSHIP_COMPARISONS:
            if not isinstance(expected, list):
                raise ConditionEvaluationError(f"'{comparison}' requires a list value")
            found = actual in expected
            return found if comparison == "in" else not found

        if not (_is_number(actual) and _is_number(expected)):
            raise ConditionEvaluationError(
                f"Type mismatch: '{comparison}' on {condition.attribute} requires numbers, "
                f"got {type(actual).__name__}"
            )
        if comparison == "greater_than":
            return actual > expected
        if comparison == "greater_or_equal":
            return actual >= expected
        if comparison == "less_than":
            return actual < expected
        return actual <= expected

    @staticmethod
    def _contains(attribute: str, actual: Any, expected: Any) -> bool:
        if isinstance(actual, str):
            if not isinstance(expected, str):
                raise ConditionEvaluationError(
                    f"Type mismatch: contains on string {attribute} requires a string value"
                )
            return expected in actual
        if isinstance(actual, (list, tuple, set, frozenset)):
            return expected in actual
        raise ConditionEvaluationError(
            f"Type mismatch: contains requires a list or string, {attribute} is {type(actual).__name__}"
        )
