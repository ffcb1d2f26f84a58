#!/usr/bin/env python3
"""
Quick Start Example
===================

Demonstrates basic usage of the TaxCalculator: a mixed basket sold into
Houston, TX by a business with Texas nexus, then the same basket sold to
a tax-exempt customer.

Usage:
    python examples/quick_start.py
"""

import asyncio
from datetime import date
from decimal import Decimal

from salestax_engine import (
    Address,
    BusinessProfile,
    InMemoryBusinessDirectory,
    InMemoryRateRepository,
    LineItem,
    TaxCalculationRequest,
    TaxCalculator,
)


async def main() -> None:
    # Built-in rate table and a single business with Texas nexus
    repository = InMemoryRateRepository.with_builtin_rates()
    businesses = InMemoryBusinessDirectory(
        [BusinessProfile("biz-001", home_state="CA", nexus_states=frozenset({"TX"}))]
    )
    calculator = TaxCalculator(repository, businesses)

    request = TaxCalculationRequest(
        business_id="biz-001",
        items=(
            LineItem("laptop", Decimal("1"), Decimal("500.00")),
            LineItem("groceries", Decimal("3"), Decimal("12.50"), tax_category="food"),
        ),
        address=Address(city="Houston", state="TX", zip_code="77002", country="US"),
        transaction_date=date(2024, 6, 1),
    )

    result = await calculator.calculate_tax(request)

    print(f"Subtotal:       ${result.subtotal:.2f}")
    for line in result.jurisdictions:
        print(
            f"  {line.jurisdiction:<14} {line.rate:.3%} on "
            f"${line.taxable_amount:.2f} = ${line.tax_amount:.2f}"
        )
    print(f"Total Tax:      ${result.total_tax:.2f}")
    print(f"Effective Rate: {result.effective_rate:.3%}")
    print(f"Total w/ Tax:   ${result.grand_total:.2f}")
    for item in result.item_breakdown:
        print(f"  {item.id:<10} tax ${item.tax_amount:.2f}")

    # Same basket, exempt customer: no rates are looked up
    print("\n--- Exempt Customer ---")
    exempt = TaxCalculationRequest(
        business_id="biz-001",
        items=request.items,
        address=request.address,
        customer_tax_exempt=True,
        transaction_date=request.transaction_date,
    )
    exempt_result = await calculator.calculate_tax(exempt)
    print(f"Exempt:         {exempt_result.is_exempt}")
    print(f"Reason:         {exempt_result.exemption_reason}")
    print(f"Tax:            ${exempt_result.total_tax:.2f}")


if __name__ == "__main__":
    asyncio.run(main())
