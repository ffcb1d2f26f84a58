"""
Exemption rules, applied in order:

1. A tax-exempt customer pays no tax on any item; rates are never looked up.
2. A category carrying an exemption at a jurisdiction contributes nothing to
   that jurisdiction's taxable amount. Other items stay taxable.
3. An unrecognized category is taxed at the general rate, never at zero.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from salestax_engine.audit import AuditSink, CategoryFallback, LoggingAuditSink
from salestax_engine.rates import GENERAL_CATEGORY, TaxRateRecord, normalize_category


class ExemptionEvaluator:
    def __init__(
        self,
        audit: Optional[AuditSink] = None,
        default_category: str = GENERAL_CATEGORY,
    ) -> None:
        self.audit = audit or LoggingAuditSink()
        self.default_category = default_category

    @staticmethod
    def is_customer_exempt(customer_tax_exempt: bool) -> bool:
        return bool(customer_tax_exempt)

    def resolve_category(
        self, item_id: str, raw_category: Optional[str], *, report: bool = True
    ) -> str:
        """Normalize an item's category, reporting any fallback when ``report``."""
        if not (raw_category or "").strip():
            return self.default_category
        category, recognized = normalize_category(raw_category)
        if not recognized:
            category = self.default_category
            if not report:
                return category
            self.audit.emit(
                CategoryFallback(
                    item_id=item_id,
                    requested_category=str(raw_category),
                    fallback_category=category,
                )
            )
        return category

    @staticmethod
    def taxable_rate(record: TaxRateRecord, category: str) -> Optional[Decimal]:
        """Rate ``record`` levies on ``category``, or None if it is exempt."""
        if record.is_exempt_for(category):
            return None
        return record.rate_for(category)
