"""
Anomaly events emitted toward the compliance-monitoring collaborator.

The engine reports but never acts on these events:
- RateCollision    - more than one active record for the same scope
- CategoryFallback - an unrecognized item category taxed at the general rate
- RateDeviation    - a calculation's effective rate far from the state average
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol, Union, runtime_checkable

from salestax_engine.logging_config import get_logger

logger = get_logger("audit")


@dataclass(frozen=True)
class RateCollision:
    jurisdiction_code: str
    jurisdiction_type: str
    category: str
    as_of: date
    chosen_record_id: str
    discarded_record_ids: tuple[str, ...]

    kind = "rate_collision"


@dataclass(frozen=True)
class CategoryFallback:
    item_id: str
    requested_category: str
    fallback_category: str

    kind = "category_fallback"


@dataclass(frozen=True)
class RateDeviation:
    state: str
    effective_rate: Decimal
    average_rate: Decimal
    deviation: Decimal
    sample_count: int

    kind = "rate_deviation"


AuditEvent = Union[RateCollision, CategoryFallback, RateDeviation]


@runtime_checkable
class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink:
    """Writes every event to the structured log at WARNING."""

    def emit(self, event: AuditEvent) -> None:
        logger.warning(
            "Tax audit event: %s",
            event.kind,
            extra={"audit_kind": event.kind, "audit": asdict(event)},
        )


class InMemoryAuditSink:
    """Keeps events in memory, optionally forwarding to another sink."""

    def __init__(self, forward: Optional[AuditSink] = None) -> None:
        self.events: list[AuditEvent] = []
        self._forward = forward

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)
        if self._forward is not None:
            self._forward.emit(event)

    def of_kind(self, kind: str) -> list[AuditEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()


@dataclass
class _StateHistory:
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    samples: int = 0


@dataclass
class EffectiveRateMonitor:
    """
    Flags calculations whose effective rate strays from the state's
    revenue-weighted historical average (total tax / total subtotal).

    Only taxed calculations are sampled. Nothing is flagged until
    ``min_samples`` calculations have been seen for the state.
    """

    threshold: Decimal = Decimal("0.5")
    min_samples: int = 10
    _history: dict[str, _StateHistory] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.threshold = Decimal(str(self.threshold))

    def average_rate(self, state: str) -> Optional[Decimal]:
        hist = self._history.get(state)
        if hist is None or hist.subtotal <= 0:
            return None
        return hist.tax / hist.subtotal

    def observe(
        self, state: str, subtotal: Decimal, total_tax: Decimal
    ) -> Optional[RateDeviation]:
        """Record one calculation and return a deviation event if any."""
        if not state or subtotal <= 0 or total_tax <= 0:
            return None

        hist = self._history.setdefault(state, _StateHistory())
        event: Optional[RateDeviation] = None
        average = self.average_rate(state)
        if average is not None and hist.samples >= self.min_samples:
            rate = total_tax / subtotal
            deviation = abs(rate - average) / average
            if deviation > self.threshold:
                event = RateDeviation(
                    state=state,
                    effective_rate=rate.quantize(Decimal("0.000001")),
                    average_rate=average.quantize(Decimal("0.000001")),
                    deviation=deviation.quantize(Decimal("0.0001")),
                    sample_count=hist.samples,
                )

        hist.subtotal += subtotal
        hist.tax += total_tax
        hist.samples += 1
        return event
