"""Shared fixtures: a small California rate table and in-memory fakes."""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from salestax_engine.audit import EffectiveRateMonitor, InMemoryAuditSink
from salestax_engine.cache import RateCache
from salestax_engine.calculator import TaxCalculator
from salestax_engine.config import EngineSettings
from salestax_engine.jurisdiction import Address
from salestax_engine.logging_config import reset_logging
from salestax_engine.nexus import BusinessProfile, InMemoryBusinessDirectory
from salestax_engine.rates import CategoryRule, TaxRateRecord
from salestax_engine.repository import InMemoryRateRepository

EFFECTIVE = date(2024, 1, 1)
SALE_DATE = date(2024, 6, 1)


class RecordingRepository(InMemoryRateRepository):
    """In-memory rate store that logs every query and can be made slow or broken."""

    def __init__(self, records=None) -> None:
        super().__init__(records)
        self.calls: list[tuple[str, str, date]] = []
        self.delay = 0.0
        self.fail_with: Optional[BaseException] = None

    async def find_active_rates(self, jurisdiction_code, category, as_of):
        self.calls.append((jurisdiction_code, category, as_of))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return await super().find_active_rates(jurisdiction_code, category, as_of)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _food_rx_exempt() -> tuple[CategoryRule, ...]:
    return (CategoryRule("food", exempt=True), CategoryRule("medicine", exempt=True))


def make_record(
    record_id: str,
    name: str,
    code: str,
    rate: str,
    effective: date = EFFECTIVE,
    **kwargs,
) -> TaxRateRecord:
    kwargs.setdefault("category_rules", _food_rx_exempt())
    return TaxRateRecord(
        record_id=record_id,
        jurisdiction_name=name,
        jurisdiction_code=code,
        rate=Decimal(rate),
        effective_date=effective,
        **kwargs,
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def ca_records() -> list[TaxRateRecord]:
    # CA 7.25% + Los Angeles County 1% + Los Angeles City 0.5% = 8.75%
    return [
        make_record("CA:state", "State", "CA", "0.0725", display_name="California"),
        make_record(
            "CA-LOS_ANGELES_COUNTY:county",
            "County",
            "CA-LOS_ANGELES_COUNTY",
            "0.01",
            display_name="Los Angeles County",
        ),
        make_record(
            "CA-LOS_ANGELES:city",
            "City",
            "CA-LOS_ANGELES",
            "0.005",
            display_name="Los Angeles",
        ),
    ]


@pytest.fixture
def repo(ca_records) -> RecordingRepository:
    return RecordingRepository(ca_records)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> RateCache:
    return RateCache(ttl_seconds=300.0, max_entries=128, clock=clock)


@pytest.fixture
def audit() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def directory() -> InMemoryBusinessDirectory:
    return InMemoryBusinessDirectory(
        [
            BusinessProfile("biz-ca", home_state="CA"),
            BusinessProfile("biz-tx", home_state="TX"),
            BusinessProfile("biz-remote", home_state="NV", nexus_states=frozenset({"ca"})),
        ]
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(store_timeout_seconds=1.0)


@pytest.fixture
def calculator(repo, directory, cache, audit, settings) -> TaxCalculator:
    return TaxCalculator(
        repo,
        directory,
        cache=cache,
        audit=audit,
        monitor=EffectiveRateMonitor(),
        settings=settings,
    )


@pytest.fixture
def la_address() -> Address:
    return Address(
        street="200 N Spring St",
        city="Los Angeles",
        state="CA",
        zip_code="90012",
        country="US",
    )
