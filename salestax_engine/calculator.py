"""
Multi-jurisdiction sales tax calculation engine.

Handles:
- Nexus gating per business and sale state
- Jurisdiction resolution (federal, state, county, city, special district)
- Effective-dated, category-scoped rate selection through the rate cache
- Customer and category exemptions
- Breakdowns that foot exactly, per jurisdiction and per line item
- Batch calculation and cache preloading
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from salestax_engine.aggregator import (
    ZERO,
    BreakdownAggregator,
    PricedItem,
    TaxBreakdown,
    round_currency,
)
from salestax_engine.audit import AuditSink, EffectiveRateMonitor, LoggingAuditSink
from salestax_engine.cache import RateCache
from salestax_engine.config import EngineSettings, get_settings
from salestax_engine.exceptions import InvalidLocation
from salestax_engine.exemptions import ExemptionEvaluator
from salestax_engine.jurisdiction import (
    Address,
    JurisdictionResolver,
    Location,
    ResolvedJurisdictions,
)
from salestax_engine.logging_config import LogContext, get_logger
from salestax_engine.nexus import BusinessDirectory, NexusEvaluator
from salestax_engine.rates import GENERAL_CATEGORY, TaxRateRecord
from salestax_engine.repository import RateRepository
from salestax_engine.selector import RateSelector

logger = get_logger("calculator")


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(str(value))
    except ArithmeticError as exc:
        raise ValueError(f"Invalid {field_name}: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid {field_name}: {value!r}")
    return result


@dataclass(frozen=True)
class LineItem:
    """A single line item on a sale."""

    id: str
    quantity: Decimal
    unit_price: Decimal
    tax_category: str = GENERAL_CATEGORY
    name: str = ""

    def __post_init__(self) -> None:
        quantity = _to_decimal(self.quantity, "quantity")
        unit_price = _to_decimal(self.unit_price, "unit_price")
        if quantity < 0 or unit_price < 0:
            raise ValueError(f"Line item {self.id}: quantity and price must be >= 0")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)

    @property
    def subtotal(self) -> Decimal:
        return round_currency(self.quantity * self.unit_price)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            id=str(data.get("id", "")),
            quantity=data.get("quantity", 1),
            unit_price=data.get("unitPrice", data.get("unit_price", 0)),
            tax_category=data.get("taxCategory", data.get("tax_category"))
            or GENERAL_CATEGORY,
            name=data.get("name", "") or "",
        )


def _parse_when(value: Any) -> Optional[Union[date, datetime]]:
    if value is None or isinstance(value, (date, datetime)):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text) if "T" in text else date.fromisoformat(text)


@dataclass(frozen=True)
class TaxCalculationRequest:
    """A sale to be taxed on behalf of a business."""

    business_id: str
    items: tuple[LineItem, ...]
    address: Address
    customer_location: Optional[str] = None
    customer_tax_exempt: bool = False
    transaction_date: Optional[Union[date, datetime]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def as_of(self) -> date:
        """The transaction day; today (UTC) when no date was given."""
        when = self.transaction_date
        if when is None:
            return datetime.now(timezone.utc).date()
        if isinstance(when, datetime):
            return when.date()
        return when

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaxCalculationRequest":
        return cls(
            business_id=str(data.get("businessId", data.get("business_id", ""))),
            items=tuple(LineItem.from_dict(i) for i in data.get("items", [])),
            address=Address.from_dict(data.get("address") or {}),
            customer_location=data.get("customerLocation") or None,
            customer_tax_exempt=bool(data.get("customerTaxExempt", False)),
            transaction_date=_parse_when(data.get("transactionDate")),
        )


@dataclass
class BatchResult:
    """Aggregated result for a batch of calculations."""

    results: list[TaxBreakdown]
    total_subtotal: Decimal
    total_tax: Decimal
    calculation_count: int
    exempt_count: int
    state_breakdown: dict[str, Decimal]
    errors: list[str] = field(default_factory=list)


class TaxCalculator:
    """
    Sales tax calculation facade.

    Composes nexus gating, jurisdiction resolution, rate selection,
    exemptions and aggregation. Every collaborator is injected; calls are
    stateless apart from cache population and are safe to retry.
    """

    def __init__(
        self,
        repository: RateRepository,
        businesses: BusinessDirectory,
        *,
        cache: Optional[RateCache] = None,
        resolver: Optional[JurisdictionResolver] = None,
        audit: Optional[AuditSink] = None,
        monitor: Optional[EffectiveRateMonitor] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.audit = audit or LoggingAuditSink()
        self.cache = cache if cache is not None else RateCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
        )
        self.resolver = resolver or JurisdictionResolver()
        self.nexus = NexusEvaluator(businesses)
        self.exemptions = ExemptionEvaluator(
            self.audit, default_category=self.settings.default_category
        )
        self.selector = RateSelector(
            repository,
            cache=self.cache,
            audit=self.audit,
            store_timeout=self.settings.store_timeout_seconds,
        )
        self.selector.attach()
        self.aggregator = BreakdownAggregator(self.exemptions)
        self.monitor = monitor or EffectiveRateMonitor(
            threshold=Decimal(str(self.settings.deviation_threshold)),
            min_samples=self.settings.deviation_min_samples,
        )

    def _price(self, request: TaxCalculationRequest, *, report: bool) -> list[PricedItem]:
        return [
            PricedItem(
                id=item.id,
                subtotal=item.subtotal,
                category=self.exemptions.resolve_category(
                    item.id, item.tax_category, report=report
                ),
            )
            for item in request.items
        ]

    def resolve_location(self, request: TaxCalculationRequest) -> ResolvedJurisdictions:
        resolved = self.resolver.resolve(request.address)
        if not resolved.is_resolved and request.customer_location:
            resolved = self.resolver.resolve(request.customer_location)
        if not resolved.is_resolved:
            raise InvalidLocation(
                request.address.describe() or request.customer_location or ""
            )
        return resolved

    async def calculate_tax(
        self,
        request: TaxCalculationRequest,
        *,
        timeout: Optional[float] = None,
        bypass_cache: bool = False,
    ) -> TaxBreakdown:
        """
        Calculate sales tax for one sale.

        Raises EntityNotFound for an unknown business, InvalidLocation when
        no country can be resolved, and TransientStoreError when the rate
        store times out or is unreachable.
        """
        calculation_id = f"calc_{uuid.uuid4().hex[:12]}"
        with LogContext.bind(
            calculation_id=calculation_id, business_id=request.business_id
        ):
            profile = await self.nexus.profile(request.business_id)
            location = self.resolve_location(request)

            if self.exemptions.is_customer_exempt(request.customer_tax_exempt):
                logger.info("Customer is tax exempt; skipping rate lookup")
                return TaxBreakdown.zero(
                    self._price(request, report=False), True, "Customer tax exempt"
                )

            if not profile.has_nexus_in(location.state):
                logger.info(
                    "No nexus in %s", location.state or location.country,
                    extra={"state": location.state},
                )
                return TaxBreakdown.zero(
                    self._price(request, report=False),
                    True,
                    f"No nexus in {location.state or location.country}",
                )

            # Category fallbacks are only reported for items that get taxed.
            priced = self._price(request, report=True)
            categories = sorted({p.category for p in priced})
            selections = await asyncio.gather(
                *(
                    self.selector.select_rates(
                        location,
                        category,
                        request.as_of,
                        timeout=timeout,
                        bypass_cache=bypass_cache,
                    )
                    for category in categories
                )
            )
            breakdown = self.aggregator.aggregate(
                priced, dict(zip(categories, selections))
            )

            deviation = self.monitor.observe(
                location.state, breakdown.subtotal, breakdown.total_tax
            )
            if deviation is not None:
                self.audit.emit(deviation)

            logger.debug(
                "Calculated %s tax on %s",
                breakdown.total_tax,
                breakdown.subtotal,
                extra={"state": location.state, "lines": len(breakdown.jurisdictions)},
            )
            return breakdown

    async def calculate_batch(
        self, requests: Sequence[TaxCalculationRequest]
    ) -> BatchResult:
        """
        Calculate tax for a batch of sales concurrently.

        Failures are collected per request rather than raised.
        """
        outcomes = await asyncio.gather(
            *(self.calculate_tax(r) for r in requests), return_exceptions=True
        )
        results: list[TaxBreakdown] = []
        errors: list[str] = []
        total_subtotal = ZERO
        total_tax = ZERO
        exempt_count = 0
        state_tax_totals: dict[str, Decimal] = {}

        for index, (request, outcome) in enumerate(zip(requests, outcomes)):
            if isinstance(outcome, Exception):
                errors.append(f"Request {index} ({request.business_id}): {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
            total_subtotal += outcome.subtotal
            total_tax += outcome.total_tax
            if outcome.is_exempt:
                exempt_count += 1
            state = self.resolver.resolve(request.address).state or "-"
            state_tax_totals[state] = (
                state_tax_totals.get(state, ZERO) + outcome.total_tax
            )

        return BatchResult(
            results=results,
            total_subtotal=total_subtotal,
            total_tax=total_tax,
            calculation_count=len(requests),
            exempt_count=exempt_count,
            state_breakdown=state_tax_totals,
            errors=errors,
        )

    async def get_tax_rates_for_location(
        self,
        location: Location,
        category: str = GENERAL_CATEGORY,
        as_of: Optional[date] = None,
    ) -> tuple[TaxRateRecord, ...]:
        """Rates that would apply to ``category`` at ``location``."""
        resolved = self.resolver.resolve(location)
        if not resolved.is_resolved:
            raise InvalidLocation(str(location))
        day = as_of or datetime.now(timezone.utc).date()
        category = self.exemptions.resolve_category("rates-lookup", category)
        return await self.selector.select_rates(resolved, category, day)

    async def preload_cache_for_location(
        self,
        location: Location,
        categories: Iterable[str] = (GENERAL_CATEGORY,),
        as_of: Optional[date] = None,
    ) -> int:
        """Warm the rate cache for a hot location; returns records loaded."""
        loaded = 0
        for category in categories:
            loaded += len(
                await self.get_tax_rates_for_location(location, category, as_of)
            )
        logger.info("Preloaded cache for %s: %d rates", location, loaded)
        return loaded

    async def validate_calculation(
        self,
        request: TaxCalculationRequest,
        expected_total: Decimal,
        tolerance: Decimal = Decimal("0.01"),
    ) -> bool:
        """Check an externally computed grand total against the engine."""
        breakdown = await self.calculate_tax(request)
        return abs(breakdown.grand_total - Decimal(str(expected_total))) <= tolerance

    def invalidate_jurisdiction(self, jurisdiction_code: str) -> int:
        return self.cache.invalidate_jurisdiction(jurisdiction_code)
