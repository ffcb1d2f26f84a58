"""Tests for rate records, categories and the built-in rate table."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from salestax_engine.rates import (
    GENERAL_CATEGORY,
    STATE_NAMES,
    CategoryRule,
    JurisdictionType,
    TaxRateRecord,
    builtin_county_index,
    builtin_rate_records,
    city_code,
    county_code,
    normalize_category,
    to_rate,
)


def _record(**overrides) -> TaxRateRecord:
    fields = dict(
        record_id="CA:state",
        jurisdiction_name="State",
        jurisdiction_code="CA",
        rate=Decimal("0.0725"),
        effective_date=date(2023, 1, 1),
    )
    fields.update(overrides)
    return TaxRateRecord(**fields)


# ── Jurisdiction types ───────────────────────────────────────────────


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Federal", JurisdictionType.FEDERAL),
        ("STATE", JurisdictionType.STATE),
        ("county", JurisdictionType.COUNTY),
        ("Parish", JurisdictionType.COUNTY),
        ("City", JurisdictionType.CITY),
        ("Special District", JurisdictionType.SPECIAL_DISTRICT),
        ("special_district", JurisdictionType.SPECIAL_DISTRICT),
    ],
)
def test_jurisdiction_type_from_name(name, expected):
    assert JurisdictionType.from_name(name) is expected


def test_unknown_jurisdiction_name_is_special_district():
    assert JurisdictionType.from_name("Transit Authority") is JurisdictionType.SPECIAL_DISTRICT
    assert JurisdictionType.from_name("") is JurisdictionType.SPECIAL_DISTRICT


def test_jurisdiction_order_runs_federal_to_special():
    orders = [jt.order for jt in JurisdictionType]
    assert orders == sorted(orders)
    assert JurisdictionType.FEDERAL.order < JurisdictionType.CITY.order


# ── Rates ────────────────────────────────────────────────────────────


def test_rate_is_fixed_scale_decimal():
    assert to_rate("0.0725") == Decimal("0.072500")
    assert to_rate(0) == Decimal("0")


def test_float_rate_rejected():
    with pytest.raises(TypeError):
        to_rate(0.0725)
    with pytest.raises(TypeError):
        _record(rate=0.0725)


def test_negative_rate_rejected():
    with pytest.raises(ValueError):
        to_rate("-0.01")


def test_expiration_must_follow_effective_date():
    with pytest.raises(ValueError):
        _record(effective_date=date(2023, 6, 30), expiration_date=date(2023, 6, 30))


# ── Effective window ─────────────────────────────────────────────────


def test_window_is_half_open():
    record = _record(expiration_date=date(2023, 6, 30))
    assert not record.is_effective_on(date(2022, 12, 31))
    assert record.is_effective_on(date(2023, 1, 1))
    assert record.is_effective_on(date(2023, 6, 29))
    assert not record.is_effective_on(date(2023, 6, 30))


def test_open_ended_record_stays_effective():
    assert _record().is_effective_on(date(2099, 1, 1))


def test_inactive_record_never_effective():
    assert not _record(is_active=False).is_effective_on(date(2023, 3, 15))


# ── Category scope and rules ─────────────────────────────────────────


def test_unscoped_record_applies_to_every_category():
    record = _record()
    assert not record.is_category_scoped
    assert record.applies_to("food")
    assert record.applies_to(GENERAL_CATEGORY)


def test_scoped_record_applies_only_to_its_categories():
    record = _record(product_categories=frozenset({"Apparel"}))
    assert record.is_category_scoped
    assert record.product_categories == frozenset({"clothing"})
    assert record.applies_to("clothing")
    assert not record.applies_to(GENERAL_CATEGORY)


def test_unknown_scope_tag_is_kept_as_written():
    record = _record(product_categories=frozenset({"Tobacco"}))
    assert record.product_categories == frozenset({"tobacco"})
    assert record.applies_to("tobacco")
    assert not record.applies_to(GENERAL_CATEGORY)


def test_unknown_category_rule_does_not_touch_general():
    record = _record(category_rules=(CategoryRule("lodging", exempt=True),))
    assert record.is_exempt_for("lodging")
    assert not record.is_exempt_for(GENERAL_CATEGORY)
    assert record.rate_for(GENERAL_CATEGORY) == Decimal("0.0725")


def test_category_rules_override_rate():
    record = _record(
        category_rules=(
            CategoryRule("food", exempt=True),
            CategoryRule("clothing", rate=Decimal("0.04")),
        )
    )
    assert record.is_exempt_for("food")
    assert record.rate_for("food") == Decimal("0")
    assert record.rate_for("clothing") == Decimal("0.04")
    assert record.rate_for(GENERAL_CATEGORY) == Decimal("0.0725")


def test_label_prefers_display_name():
    assert _record(display_name="California").label == "California"
    assert _record().label == "State"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("general", ("general", True)),
        ("Grocery", ("food", True)),
        ("prescription-drug", ("medicine", True)),
        ("Medical Device", ("medical_device", True)),
        ("widgets", ("general", False)),
        (None, ("general", False)),
    ],
)
def test_normalize_category(raw, expected):
    assert normalize_category(raw) == expected


# ── Jurisdiction codes ───────────────────────────────────────────────


def test_county_code_strips_suffix():
    assert county_code("CA", "Los Angeles County") == "CA-LOS_ANGELES_COUNTY"
    assert county_code("LA", "Orleans Parish") == "LA-ORLEANS_COUNTY"
    assert county_code("CA", "") == ""


def test_city_code():
    assert city_code("tx", "San Antonio") == "TX-SAN_ANTONIO"
    assert city_code("", "Austin") == ""


# ── Built-in table ───────────────────────────────────────────────────


def test_builtin_table_covers_fifty_states_and_dc():
    assert len(STATE_NAMES) == 51
    assert STATE_NAMES["DC"] == "District of Columbia"


def test_builtin_records_skip_states_without_sales_tax():
    codes = {r.jurisdiction_code for r in builtin_rate_records()}
    assert "CA" in codes
    assert "OR" not in codes
    assert "DE" not in codes


def test_builtin_california_state_record():
    ca = next(r for r in builtin_rate_records() if r.record_id == "CA:state:2024-01-01")
    assert ca.rate == Decimal("0.0725")
    assert ca.jurisdiction_type is JurisdictionType.STATE
    assert ca.is_exempt_for("food")
    assert ca.is_exempt_for("medicine")
    assert not ca.is_exempt_for("clothing")


def test_builtin_special_district():
    record = next(r for r in builtin_rate_records() if r.jurisdiction_code == "ID-SUN_VALLEY")
    assert record.jurisdiction_type is JurisdictionType.SPECIAL_DISTRICT


def test_builtin_records_take_effective_date():
    records = builtin_rate_records(date(2025, 1, 1))
    assert all(r.effective_date == date(2025, 1, 1) for r in records)
    assert all(r.published_at is None or isinstance(r.published_at, datetime) for r in records)


def test_county_index_maps_known_cities():
    index = builtin_county_index()
    assert index[("CA", "los angeles")] == "Los Angeles"
    assert index[("TX", "houston")] == "Harris"
