"""Tests for audit events and effective-rate monitoring."""

import logging
from datetime import date
from decimal import Decimal

from salestax_engine.audit import (
    AuditSink,
    CategoryFallback,
    EffectiveRateMonitor,
    InMemoryAuditSink,
    LoggingAuditSink,
    RateCollision,
)


def _collision() -> RateCollision:
    return RateCollision(
        jurisdiction_code="CA",
        jurisdiction_type="state",
        category="general",
        as_of=date(2024, 6, 1),
        chosen_record_id="CA:new",
        discarded_record_ids=("CA:old",),
    )


def test_sinks_satisfy_protocol():
    assert isinstance(LoggingAuditSink(), AuditSink)
    assert isinstance(InMemoryAuditSink(), AuditSink)


def test_in_memory_sink_filters_by_kind():
    sink = InMemoryAuditSink()
    sink.emit(_collision())
    sink.emit(CategoryFallback("item-1", "widgets", "general"))
    assert len(sink.events) == 2
    assert [e.kind for e in sink.of_kind("rate_collision")] == ["rate_collision"]
    sink.clear()
    assert sink.events == []


def test_in_memory_sink_forwards():
    downstream = InMemoryAuditSink()
    InMemoryAuditSink(forward=downstream).emit(_collision())
    assert len(downstream.events) == 1


def test_logging_sink_writes_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="salestax_engine"):
        LoggingAuditSink().emit(_collision())
    [record] = caplog.records
    assert record.levelno == logging.WARNING
    assert record.audit_kind == "rate_collision"
    assert record.audit["chosen_record_id"] == "CA:new"


# ── Effective-rate monitor ───────────────────────────────────────────


def _feed(monitor: EffectiveRateMonitor, count: int) -> None:
    for _ in range(count):
        assert monitor.observe("CA", Decimal("100.00"), Decimal("8.75")) is None


def test_monitor_needs_minimum_samples():
    monitor = EffectiveRateMonitor()
    _feed(monitor, 9)
    assert monitor.observe("CA", Decimal("100.00"), Decimal("30.00")) is None


def test_monitor_flags_large_deviation():
    monitor = EffectiveRateMonitor()
    _feed(monitor, 10)
    event = monitor.observe("CA", Decimal("100.00"), Decimal("15.00"))
    assert event is not None
    assert event.kind == "rate_deviation"
    assert event.average_rate == Decimal("0.087500")
    assert event.effective_rate == Decimal("0.150000")
    assert event.sample_count == 10


def test_monitor_tolerates_small_deviation():
    monitor = EffectiveRateMonitor()
    _feed(monitor, 10)
    assert monitor.observe("CA", Decimal("100.00"), Decimal("9.50")) is None


def test_monitor_ignores_untaxed_calculations():
    monitor = EffectiveRateMonitor(min_samples=1)
    assert monitor.observe("CA", Decimal("100.00"), Decimal("0.00")) is None
    assert monitor.average_rate("CA") is None


def test_monitor_tracks_states_separately():
    monitor = EffectiveRateMonitor(min_samples=1)
    monitor.observe("CA", Decimal("100.00"), Decimal("8.75"))
    monitor.observe("TX", Decimal("100.00"), Decimal("8.25"))
    assert monitor.average_rate("CA") == Decimal("0.0875")
    assert monitor.average_rate("TX") == Decimal("0.0825")
