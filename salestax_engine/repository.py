"""
Rate store access.

The engine only reads rates through ``RateRepository`` and listens for
writes through ``on_rate_changed`` so cached lookups can be invalidated.
``InMemoryRateRepository`` is the reference implementation, loadable from
the built-in table or a CSV rate file.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, Union, runtime_checkable

import pandas as pd

from salestax_engine.logging_config import get_logger
from salestax_engine.rates import (
    CategoryRule,
    TaxRateRecord,
    builtin_rate_records,
)

logger = get_logger("repository")

RateChangeListener = Callable[[str], None]


@runtime_checkable
class RateRepository(Protocol):
    """
    Interface for the rate store.

    Implementations:
    - InMemoryRateRepository (reference / testing)
    - a database-backed store owned by the rate-ingestion service
    """

    async def find_active_rates(
        self, jurisdiction_code: str, category: str, as_of: date
    ) -> list[TaxRateRecord]:
        """
        Return active records for the code whose window contains ``as_of``
        and whose category scope is empty or contains ``category``.
        """
        ...

    def on_rate_changed(self, listener: RateChangeListener) -> Callable[[], None]:
        """Register a write listener; returns an unsubscribe callable."""
        ...


class InMemoryRateRepository:
    """Rate store held in process memory."""

    def __init__(self, records: Optional[Iterable[TaxRateRecord]] = None) -> None:
        self._records: dict[str, TaxRateRecord] = {}
        self._listeners: list[RateChangeListener] = []
        for record in records or ():
            self._records[record.record_id] = record

    @classmethod
    def with_builtin_rates(cls) -> "InMemoryRateRepository":
        return cls(builtin_rate_records())

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "InMemoryRateRepository":
        return cls(load_rates_csv(path))

    def __len__(self) -> int:
        return len(self._records)

    def all_records(self) -> list[TaxRateRecord]:
        return sorted(self._records.values(), key=lambda r: r.record_id)

    async def find_active_rates(
        self, jurisdiction_code: str, category: str, as_of: date
    ) -> list[TaxRateRecord]:
        return [
            r
            for r in self._records.values()
            if r.jurisdiction_code == jurisdiction_code
            and r.is_effective_on(as_of)
            and r.applies_to(category)
        ]

    # -- writes ---------------------------------------------------------

    def on_rate_changed(self, listener: RateChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, jurisdiction_code: str) -> None:
        for listener in list(self._listeners):
            listener(jurisdiction_code)

    def publish(self, record: TaxRateRecord) -> None:
        """Insert or replace a record and notify listeners."""
        previous = self._records.get(record.record_id)
        self._records[record.record_id] = record
        logger.info(
            "Published rate %s", record.record_id,
            extra={"jurisdiction_code": record.jurisdiction_code, "rate": record.rate},
        )
        self._notify(record.jurisdiction_code)
        if previous is not None and previous.jurisdiction_code != record.jurisdiction_code:
            self._notify(previous.jurisdiction_code)

    def withdraw(self, record_id: str) -> Optional[TaxRateRecord]:
        """Remove a record entirely and notify listeners."""
        record = self._records.pop(record_id, None)
        if record is not None:
            logger.info("Withdrew rate %s", record_id)
            self._notify(record.jurisdiction_code)
        return record


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------

_REQUIRED_COLUMNS = (
    "record_id",
    "jurisdiction_name",
    "jurisdiction_code",
    "rate",
    "effective_date",
)


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(";") if v.strip()]


def _optional_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def load_rates_csv(path: Union[str, Path]) -> list[TaxRateRecord]:
    """
    Load rate records from a CSV file.

    Required columns: record_id, jurisdiction_name, jurisdiction_code,
                      rate, effective_date
    Optional columns: expiration_date, product_categories (``;``-separated),
                      exempt_categories (``;``-separated), is_active,
                      display_name, tax_type
    """
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = [c for c in _REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Rate file {path} missing columns: {', '.join(missing)}")

    records: list[TaxRateRecord] = []
    for row in frame.to_dict(orient="records"):
        records.append(
            TaxRateRecord(
                record_id=row["record_id"],
                jurisdiction_name=row["jurisdiction_name"],
                jurisdiction_code=row["jurisdiction_code"].strip().upper(),
                rate=row["rate"].strip(),
                effective_date=date.fromisoformat(row["effective_date"]),
                expiration_date=_optional_date(row.get("expiration_date", "")),
                product_categories=frozenset(_split(row.get("product_categories", ""))),
                is_active=row.get("is_active", "true").strip().lower()
                not in ("false", "0", "no"),
                category_rules=tuple(
                    CategoryRule(c, exempt=True)
                    for c in _split(row.get("exempt_categories", ""))
                ),
                display_name=row.get("display_name", ""),
                tax_type=row.get("tax_type", "") or "sales",
            )
        )
    logger.info("Loaded %d rate records from %s", len(records), path)
    return records
