"""
Tax breakdown aggregation.

Each selected rate becomes one jurisdiction line:
``tax_amount = round(taxable_amount * rate, 0.01)``. The total is the sum
of the already-rounded line amounts (round-then-sum), so the breakdown
always foots to the displayed total. Line tax is split across the items
taxable at that line in proportion to their subtotals, using
largest-remainder cents, so item taxes foot to the total as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Sequence

from salestax_engine.exemptions import ExemptionEvaluator
from salestax_engine.rates import JurisdictionType, TaxRateRecord

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
EFFECTIVE_RATE_SCALE = Decimal("0.000001")


def round_currency(amount: Decimal) -> Decimal:
    """Round to the nearest cent, halves away from zero."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def allocate_cents(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """
    Split ``total`` across ``weights`` proportionally in whole cents.

    Leftover cents go to the largest fractional remainders, earlier
    entries first on ties. The parts always sum to ``total``.
    """
    weight_sum = sum(weights, Decimal("0"))
    if not weights or weight_sum <= 0:
        return [ZERO for _ in weights]
    total_cents = int(round_currency(total) / CENT)
    raw = [total_cents * w / weight_sum for w in weights]
    cents = [int(r) for r in raw]
    leftover = total_cents - sum(cents)
    order = sorted(range(len(raw)), key=lambda i: (-(raw[i] - cents[i]), i))
    for i in order[:leftover]:
        cents[i] += 1
    return [(Decimal(c) * CENT).quantize(CENT) for c in cents]


@dataclass(frozen=True)
class PricedItem:
    """A line item reduced to what aggregation needs."""

    id: str
    subtotal: Decimal
    category: str


@dataclass
class JurisdictionTax:
    jurisdiction: str
    jurisdiction_code: str
    jurisdiction_type: JurisdictionType
    tax_type: str
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "jurisdictionCode": self.jurisdiction_code,
            "jurisdictionType": self.jurisdiction_type.value,
            "taxType": self.tax_type,
            "rate": str(self.rate),
            "taxableAmount": str(self.taxable_amount),
            "taxAmount": str(self.tax_amount),
        }


@dataclass
class ItemTax:
    id: str
    subtotal: Decimal
    tax_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subtotal": str(self.subtotal),
            "taxAmount": str(self.tax_amount),
            "total": str(self.total),
        }


@dataclass
class TaxBreakdown:
    """Result of one tax calculation."""

    subtotal: Decimal
    total_tax: Decimal
    effective_rate: Decimal
    federal_tax: Decimal = ZERO
    state_tax: Decimal = ZERO
    county_tax: Decimal = ZERO
    city_tax: Decimal = ZERO
    special_district_tax: Decimal = ZERO
    jurisdictions: list[JurisdictionTax] = field(default_factory=list)
    item_breakdown: list[ItemTax] = field(default_factory=list)
    is_exempt: bool = False
    exemption_reason: str = ""

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal + self.total_tax

    @classmethod
    def zero(
        cls,
        items: Sequence[PricedItem],
        is_exempt: bool = False,
        reason: str = "",
    ) -> "TaxBreakdown":
        """All-zero breakdown used for exempt customers and missing nexus."""
        subtotal = sum((i.subtotal for i in items), ZERO)
        return cls(
            subtotal=subtotal,
            total_tax=ZERO,
            effective_rate=Decimal("0").quantize(EFFECTIVE_RATE_SCALE),
            item_breakdown=[ItemTax(i.id, i.subtotal) for i in items],
            is_exempt=is_exempt,
            exemption_reason=reason,
        )

    def bucket(self, jurisdiction_type: JurisdictionType) -> Decimal:
        return {
            JurisdictionType.FEDERAL: self.federal_tax,
            JurisdictionType.STATE: self.state_tax,
            JurisdictionType.COUNTY: self.county_tax,
            JurisdictionType.CITY: self.city_tax,
            JurisdictionType.SPECIAL_DISTRICT: self.special_district_tax,
        }[jurisdiction_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": str(self.subtotal),
            "totalTax": str(self.total_tax),
            "grandTotal": str(self.grand_total),
            "effectiveRate": str(self.effective_rate),
            "federalTax": str(self.federal_tax),
            "stateTax": str(self.state_tax),
            "countyTax": str(self.county_tax),
            "cityTax": str(self.city_tax),
            "specialDistrictTax": str(self.special_district_tax),
            "taxBreakdown": [j.to_dict() for j in self.jurisdictions],
            "itemBreakdown": [i.to_dict() for i in self.item_breakdown],
            "isExempt": self.is_exempt,
            "exemptionReason": self.exemption_reason,
        }


class _Line:
    __slots__ = ("record", "rate", "members")

    def __init__(self, record: TaxRateRecord, rate: Decimal) -> None:
        self.record = record
        self.rate = rate
        self.members: list[int] = []

    def sort_key(self) -> tuple:
        return (
            self.record.jurisdiction_type.order,
            self.record.jurisdiction_code,
            self.record.record_id,
            self.rate,
        )


class BreakdownAggregator:
    def __init__(self, exemptions: Optional[ExemptionEvaluator] = None) -> None:
        self.exemptions = exemptions or ExemptionEvaluator()

    def aggregate(
        self,
        items: Sequence[PricedItem],
        rates_by_category: Mapping[str, Sequence[TaxRateRecord]],
    ) -> TaxBreakdown:
        lines: dict[tuple[str, Decimal], _Line] = {}
        for index, item in enumerate(items):
            if item.subtotal <= 0:
                continue
            for record in rates_by_category.get(item.category, ()):
                rate = self.exemptions.taxable_rate(record, item.category)
                if rate is None:
                    continue
                line = lines.setdefault(
                    (record.record_id, rate), _Line(record, rate)
                )
                line.members.append(index)

        item_taxes = [ItemTax(i.id, i.subtotal) for i in items]
        buckets: dict[JurisdictionType, Decimal] = {jt: ZERO for jt in JurisdictionType}
        jurisdictions: list[JurisdictionTax] = []
        total_tax = ZERO

        for line in sorted(lines.values(), key=_Line.sort_key):
            weights = [items[i].subtotal for i in line.members]
            taxable = sum(weights, ZERO)
            tax = round_currency(taxable * line.rate)
            record = line.record
            jurisdictions.append(
                JurisdictionTax(
                    jurisdiction=record.label,
                    jurisdiction_code=record.jurisdiction_code,
                    jurisdiction_type=record.jurisdiction_type,
                    tax_type=record.tax_type,
                    rate=line.rate,
                    taxable_amount=taxable,
                    tax_amount=tax,
                )
            )
            buckets[record.jurisdiction_type] += tax
            total_tax += tax
            for i, share in zip(line.members, allocate_cents(tax, weights)):
                item_taxes[i].tax_amount += share

        subtotal = sum((i.subtotal for i in items), ZERO)
        effective_rate = (
            (total_tax / subtotal).quantize(EFFECTIVE_RATE_SCALE, rounding=ROUND_HALF_UP)
            if subtotal > 0
            else Decimal("0").quantize(EFFECTIVE_RATE_SCALE)
        )
        return TaxBreakdown(
            subtotal=subtotal,
            total_tax=total_tax,
            effective_rate=effective_rate,
            federal_tax=buckets[JurisdictionType.FEDERAL],
            state_tax=buckets[JurisdictionType.STATE],
            county_tax=buckets[JurisdictionType.COUNTY],
            city_tax=buckets[JurisdictionType.CITY],
            special_district_tax=buckets[JurisdictionType.SPECIAL_DISTRICT],
            jurisdictions=jurisdictions,
            item_breakdown=item_taxes,
        )
