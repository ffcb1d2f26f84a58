"""Tests for exemption rules and category resolution."""

from decimal import Decimal

import pytest

from salestax_engine.exemptions import ExemptionEvaluator


@pytest.fixture
def evaluator(audit) -> ExemptionEvaluator:
    return ExemptionEvaluator(audit)


def test_customer_exemption_flag():
    assert ExemptionEvaluator.is_customer_exempt(True)
    assert not ExemptionEvaluator.is_customer_exempt(False)


def test_known_category_passes_through(evaluator, audit):
    assert evaluator.resolve_category("item-1", "food") == "food"
    assert evaluator.resolve_category("item-2", "Groceries") == "food"
    assert audit.events == []


def test_missing_category_defaults_silently(evaluator, audit):
    assert evaluator.resolve_category("item-1", None) == "general"
    assert evaluator.resolve_category("item-2", "  ") == "general"
    assert audit.events == []


def test_unknown_category_falls_back_to_general(evaluator, audit):
    assert evaluator.resolve_category("item-9", "widgets") == "general"
    [event] = audit.of_kind("category_fallback")
    assert event.item_id == "item-9"
    assert event.requested_category == "widgets"
    assert event.fallback_category == "general"


def test_default_category_is_configurable(audit):
    evaluator = ExemptionEvaluator(audit, default_category="digital")
    assert evaluator.resolve_category("item-1", "") == "digital"
    assert evaluator.resolve_category("item-2", "widgets") == "digital"


def test_taxable_rate(ca_records):
    state = ca_records[0]
    assert ExemptionEvaluator.taxable_rate(state, "general") == Decimal("0.0725")
    assert ExemptionEvaluator.taxable_rate(state, "clothing") == Decimal("0.0725")
    assert ExemptionEvaluator.taxable_rate(state, "food") is None
    assert ExemptionEvaluator.taxable_rate(state, "medicine") is None
