"""
Effective-dated rate selection.

For every resolved jurisdiction level (federal, state, county, city) the
selector queries the rate store for records active on the as-of day and
applicable to the category, then keeps exactly one record per
``(jurisdiction_code, jurisdiction_type)``:

- a category-scoped record beats an unscoped (all-categories) record
- among equally specific records the latest
  ``(effective_date, published_at)`` wins

More than one match in a group is a data anomaly and is always reported as
a RateCollision, even when specificity decided the winner.

Colliding records are never summed.
"""

from __future__ import annotations

import asyncio
from datetime import date
from functools import partial
from typing import Callable, Optional

from salestax_engine.audit import AuditSink, LoggingAuditSink, RateCollision
from salestax_engine.cache import RateCache, RateCacheKey
from salestax_engine.exceptions import TransientStoreError
from salestax_engine.jurisdiction import ResolvedJurisdictions
from salestax_engine.logging_config import get_logger
from salestax_engine.rates import JurisdictionType, TaxRateRecord
from salestax_engine.repository import RateRepository

logger = get_logger("selector")

_TRANSIENT_ERRORS = (asyncio.TimeoutError, ConnectionError, OSError)


def _recency(record: TaxRateRecord) -> tuple:
    published = record.published_at.timestamp() if record.published_at else float("-inf")
    return (record.effective_date, published, record.record_id)


class RateSelector:
    """Picks the legally effective rate for each jurisdiction level."""

    def __init__(
        self,
        repository: RateRepository,
        cache: Optional[RateCache] = None,
        audit: Optional[AuditSink] = None,
        store_timeout: Optional[float] = None,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.audit = audit or LoggingAuditSink()
        self.store_timeout = store_timeout
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> None:
        """Invalidate cached selections whenever the store reports a write."""
        if self.cache is not None and self._unsubscribe is None:
            self._unsubscribe = self.repository.on_rate_changed(
                self.cache.invalidate_jurisdiction
            )

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def select_rates(
        self,
        jurisdictions: ResolvedJurisdictions,
        category: str,
        as_of: date,
        *,
        timeout: Optional[float] = None,
        bypass_cache: bool = False,
    ) -> tuple[TaxRateRecord, ...]:
        if not jurisdictions.is_resolved:
            return ()
        codes = jurisdictions.codes
        wait = timeout if timeout is not None else self.store_timeout
        loader = partial(self._load, codes, category, as_of, wait)

        if bypass_cache or self.cache is None:
            return await loader()
        key = RateCacheKey(codes, category, as_of)
        return await self.cache.get_or_load(key, loader, wait)

    async def _load(
        self,
        codes: tuple[str, ...],
        category: str,
        as_of: date,
        timeout: Optional[float],
    ) -> tuple[TaxRateRecord, ...]:
        unique = [c for i, c in enumerate(codes) if c and c not in codes[:i]]
        results = await asyncio.gather(
            *(self._query(code, category, as_of, timeout) for code in unique)
        )
        candidates = [r for found in results for r in found]
        return self._choose(candidates, category, as_of)

    async def _query(
        self,
        code: str,
        category: str,
        as_of: date,
        timeout: Optional[float],
    ) -> list[TaxRateRecord]:
        try:
            found = await asyncio.wait_for(
                self.repository.find_active_rates(code, category, as_of), timeout
            )
        except TransientStoreError:
            raise
        except _TRANSIENT_ERRORS as exc:
            logger.error(
                "Rate store query failed for %s", code,
                extra={"jurisdiction_code": code, "error": repr(exc)},
            )
            raise TransientStoreError(
                f"Rate store unavailable for {code}: {exc!r}", jurisdiction_code=code
            ) from exc
        return [
            r
            for r in found
            if r.jurisdiction_code == code
            and r.is_effective_on(as_of)
            and r.applies_to(category)
        ]

    def _choose(
        self,
        candidates: list[TaxRateRecord],
        category: str,
        as_of: date,
    ) -> tuple[TaxRateRecord, ...]:
        groups: dict[tuple[str, JurisdictionType], list[TaxRateRecord]] = {}
        for record in candidates:
            key = (record.jurisdiction_code, record.jurisdiction_type)
            groups.setdefault(key, []).append(record)

        chosen: list[TaxRateRecord] = []
        for (code, jtype), group in groups.items():
            group = sorted(set(group), key=_recency)
            scoped = [r for r in group if r.is_category_scoped]
            winner = (scoped or group)[-1]
            if len(group) > 1:
                self.audit.emit(
                    RateCollision(
                        jurisdiction_code=code,
                        jurisdiction_type=jtype.value,
                        category=category,
                        as_of=as_of,
                        chosen_record_id=winner.record_id,
                        discarded_record_ids=tuple(
                            r.record_id for r in group if r is not winner
                        ),
                    )
                )
            chosen.append(winner)

        chosen.sort(key=lambda r: (r.jurisdiction_type.order, r.jurisdiction_code))
        return tuple(chosen)
