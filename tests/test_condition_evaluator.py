"""Rule condition parsing and evaluation tests."""

from typing import Any, Dict

import pytest
from pydantic import ValidationError

from deskflow.config import ConditionResult, ConversationPriority
from deskflow.automation.domain import (
    AndCondition,
    NotCondition,
    RuleConditionEvaluator,
    SimpleCondition,
    dump_condition,
    parse_condition,
)

pytestmark = pytest.mark.unit


def simple(attribute: str, comparison: str, value: Any) -> Dict[str, Any]:
    return {"operator": "simple", "attribute": attribute, "comparison": comparison, "value": value}


@pytest.fixture
def evaluator() -> RuleConditionEvaluator:
    return RuleConditionEvaluator()


@pytest.fixture
def payload() -> Dict[str, Any]:
    return {
        "conversation_id": "conv-1",
        "priority": "high",
        "status": "open",
        "tags": ["vip", "billing"],
        "subject": "Refund request for order 42",
        "message_count": 3,
        "contact": {"email": "ada@example.com", "plan": "enterprise"},
    }


class TestParsing:

    def test_parse_nested_tree(self) -> None:
        condition = parse_condition({
            "operator": "and",
            "conditions": [
                simple("priority", "equals", "high"),
                {"operator": "not", "condition": simple("status", "equals", "closed")},
            ],
        })

        assert isinstance(condition, AndCondition)
        assert isinstance(condition.conditions[1], NotCondition)

    def test_dump_is_json_ready(self) -> None:
        data = {"operator": "or", "conditions": [simple("priority", "equals", "high"), simple("tags", "contains", "vip")]}
        assert dump_condition(parse_condition(data)) == data

    def test_and_needs_two_children(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition({"operator": "and", "conditions": [simple("priority", "equals", "high")]})

    def test_unknown_operator_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition({"operator": "xor", "conditions": []})

    def test_unknown_comparison_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition(simple("priority", "matches", "h.*"))

    def test_in_requires_a_list(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition(simple("priority", "in", "high"))

    def test_ordering_requires_a_number(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition(simple("message_count", "greater_than", "2"))

    def test_empty_attribute_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_condition(simple("", "equals", "x"))


class TestEvaluation:

    @pytest.mark.parametrize(
        "condition, expected",
        [
            (simple("priority", "equals", "high"), ConditionResult.TRUE),
            (simple("priority", "equals", "low"), ConditionResult.FALSE),
            (simple("priority", "not_equals", "low"), ConditionResult.TRUE),
            (simple("tags", "contains", "vip"), ConditionResult.TRUE),
            (simple("tags", "contains", "spam"), ConditionResult.FALSE),
            (simple("subject", "contains", "Refund"), ConditionResult.TRUE),
            (simple("message_count", "greater_than", 2), ConditionResult.TRUE),
            (simple("message_count", "greater_or_equal", 3), ConditionResult.TRUE),
            (simple("message_count", "less_than", 3), ConditionResult.FALSE),
            (simple("message_count", "less_or_equal", 3), ConditionResult.TRUE),
            (simple("status", "in", ["open", "snoozed"]), ConditionResult.TRUE),
            (simple("status", "not_in", ["open", "snoozed"]), ConditionResult.FALSE),
            (simple("contact.plan", "equals", "enterprise"), ConditionResult.TRUE),
        ],
    )
    def test_comparisons(self, evaluator, payload, condition, expected) -> None:
        assert evaluator.evaluate(parse_condition(condition), payload).result == expected

    def test_and_or_not(self, evaluator, payload) -> None:
        condition = parse_condition({
            "operator": "and",
            "conditions": [
                {"operator": "or", "conditions": [
                    simple("priority", "equals", "urgent"),
                    simple("tags", "contains", "vip"),
                ]},
                {"operator": "not", "condition": simple("status", "equals", "closed")},
            ],
        })

        outcome = evaluator.evaluate(condition, payload)

        assert outcome.result == ConditionResult.TRUE
        assert outcome.matched
        assert outcome.error is None

    def test_missing_attribute_is_an_error(self, evaluator, payload) -> None:
        outcome = evaluator.evaluate(parse_condition(simple("language", "equals", "en")), payload)

        assert outcome.result == ConditionResult.ERROR
        assert not outcome.matched
        assert "language" in outcome.error

    def test_missing_nested_attribute_is_an_error(self, evaluator, payload) -> None:
        outcome = evaluator.evaluate(parse_condition(simple("contact.phone", "equals", "1")), payload)
        assert outcome.result == ConditionResult.ERROR

    def test_ordering_on_text_is_an_error(self, evaluator, payload) -> None:
        outcome = evaluator.evaluate(parse_condition(simple("priority", "greater_than", 1)), payload)

        assert outcome.result == ConditionResult.ERROR
        assert "Type mismatch" in outcome.error

    def test_contains_on_number_is_an_error(self, evaluator, payload) -> None:
        outcome = evaluator.evaluate(parse_condition(simple("message_count", "contains", 3)), payload)
        assert outcome.result == ConditionResult.ERROR

    def test_and_short_circuits_before_error(self, evaluator, payload) -> None:
        condition = parse_condition({
            "operator": "and",
            "conditions": [simple("priority", "equals", "low"), simple("missing", "equals", 1)],
        })

        assert evaluator.evaluate(condition, payload).result == ConditionResult.FALSE

    def test_or_short_circuits_before_error(self, evaluator, payload) -> None:
        condition = parse_condition({
            "operator": "or",
            "conditions": [simple("priority", "equals", "high"), simple("missing", "equals", 1)],
        })

        assert evaluator.evaluate(condition, payload).result == ConditionResult.TRUE

    def test_error_inside_not_stays_an_error(self, evaluator, payload) -> None:
        condition = parse_condition({"operator": "not", "condition": simple("missing", "equals", 1)})
        assert evaluator.evaluate(condition, payload).result == ConditionResult.ERROR

    def test_enum_values_are_compared_by_value(self, evaluator) -> None:
        condition = SimpleCondition(attribute="priority", comparison="equals", value="urgent")
        outcome = evaluator.evaluate(condition, {"priority": ConversationPriority.URGENT})

        assert outcome.result == ConditionResult.TRUE

    def test_resolve_attribute_reads_objects(self) -> None:
        class Contact:
            email = "ada@example.com"

        assert RuleConditionEvaluator.resolve_attribute({"contact": Contact()}, "contact.email") == "ada@example.com"
