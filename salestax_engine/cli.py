"""
Command-line interface for the Sales Tax Engine.

Provides subcommands for tax calculation and rate lookup against the
built-in rate table or a CSV rate file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from salestax_engine.aggregator import TaxBreakdown
from salestax_engine.calculator import LineItem, TaxCalculationRequest, TaxCalculator
from salestax_engine.config import get_settings
from salestax_engine.exceptions import TaxEngineError
from salestax_engine.jurisdiction import Address, JurisdictionResolver, normalize_state
from salestax_engine.logging_config import configure_logging
from salestax_engine.nexus import BusinessProfile, InMemoryBusinessDirectory
from salestax_engine.rates import normalize_category
from salestax_engine.repository import InMemoryRateRepository

console = Console()

CLI_BUSINESS_ID = "cli-business"


def _build_calculator(
    rates_csv: Optional[str], business_state: str, sale_state: str
) -> TaxCalculator:
    if rates_csv:
        if not Path(rates_csv).exists():
            console.print(f"[red]File not found: {rates_csv}[/red]")
            sys.exit(1)
        repository = InMemoryRateRepository.from_csv(rates_csv)
    else:
        repository = InMemoryRateRepository.with_builtin_rates()

    # Without a home state the CLI seller is treated as local to the sale.
    businesses = InMemoryBusinessDirectory(
        [
            BusinessProfile(
                business_id=CLI_BUSINESS_ID,
                home_state=business_state or sale_state,
            )
        ]
    )
    return TaxCalculator(repository, businesses)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid date (expected YYYY-MM-DD): {value}[/red]")
        sys.exit(1)


def _parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except ArithmeticError:
        amount = None
    if amount is None or not amount.is_finite() or amount < 0:
        console.print(f"[red]Invalid amount: {value}[/red]")
        sys.exit(1)
    return amount


def _load_request(path: str) -> TaxCalculationRequest:
    request_path = Path(path)
    if not request_path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        sys.exit(1)
    with open(request_path, encoding="utf-8") as f:
        data = json.load(f)
    data.setdefault("businessId", CLI_BUSINESS_ID)
    try:
        return TaxCalculationRequest.from_dict(data)
    except ValueError as e:
        console.print(f"[red]Invalid request in {path}: {e}[/red]")
        sys.exit(1)


def _print_breakdown(result: TaxBreakdown) -> None:
    if result.jurisdictions:
        table = Table(title="Tax Breakdown", box=box.ROUNDED)
        table.add_column("Jurisdiction", style="bold")
        table.add_column("Code", style="dim")
        table.add_column("Type")
        table.add_column("Rate", justify="right")
        table.add_column("Taxable", justify="right")
        table.add_column("Tax", justify="right", style="bold")
        for line in result.jurisdictions:
            table.add_row(
                line.jurisdiction,
                line.jurisdiction_code,
                line.jurisdiction_type.value,
                f"{line.rate:.3%}",
                f"${line.taxable_amount:,.2f}",
                f"${line.tax_amount:,.2f}",
            )
        console.print(table)

    console.print(
        Panel(
            f"[bold]Subtotal:[/bold] ${result.subtotal:,.2f}\n"
            f"[bold]State Tax:[/bold] ${result.state_tax:,.2f}\n"
            f"[bold]County Tax:[/bold] ${result.county_tax:,.2f}\n"
            f"[bold]City Tax:[/bold] ${result.city_tax:,.2f}\n"
            f"[bold]Special District Tax:[/bold] ${result.special_district_tax:,.2f}\n"
            f"[bold]Total Tax:[/bold] ${result.total_tax:,.2f}\n"
            f"[bold]Effective Rate:[/bold] {result.effective_rate:.3%}\n"
            f"[bold]Total w/ Tax:[/bold] ${result.grand_total:,.2f}\n"
            f"[bold]Exempt:[/bold] {'Yes - ' + result.exemption_reason if result.is_exempt else 'No'}",
            title="Tax Calculation",
            border_style="blue",
        )
    )


# -----------------------------------------------------------------------
# Subcommand: calculate
# -----------------------------------------------------------------------


def cmd_calculate(args: argparse.Namespace) -> None:
    """Calculate sales tax for a single sale or a JSON request file."""
    if args.file:
        request = _load_request(args.file)
    else:
        if not args.amount or not args.state:
            console.print("[red]Provide --amount and --state, or --file[/red]")
            sys.exit(1)
        request = TaxCalculationRequest(
            business_id=CLI_BUSINESS_ID,
            items=(
                LineItem(
                    id="cli-item",
                    quantity=Decimal("1"),
                    unit_price=_parse_amount(args.amount),
                    tax_category=args.category or "general",
                ),
            ),
            address=Address(
                city=args.city or "",
                state=args.state,
                zip_code=args.zip or "",
                country="US",
            ),
            customer_tax_exempt=args.exempt,
            transaction_date=_parse_date(args.date),
        )

    # Seller and sale states are compared as resolved two-letter codes.
    sale_state = JurisdictionResolver().resolve(request.address).state
    business_state = normalize_state(args.business_state or "")
    calc = _build_calculator(args.rates_csv, business_state, sale_state)
    try:
        result = asyncio.run(calc.calculate_tax(request))
    except TaxEngineError as e:
        console.print(f"[red]{e.code}: {e}[/red]")
        sys.exit(2)

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _print_breakdown(result)


# -----------------------------------------------------------------------
# Subcommand: rates
# -----------------------------------------------------------------------


def cmd_rates(args: argparse.Namespace) -> None:
    """Display the rate records selected for a location."""
    state = args.state.upper()
    category = normalize_category(args.category)[0]
    calc = _build_calculator(args.rates_csv, "", state)
    location = Address(city=args.city or "", state=state, country="US")
    day = _parse_date(args.date)

    try:
        records = asyncio.run(
            calc.get_tax_rates_for_location(location, category, day)
        )
    except TaxEngineError as e:
        console.print(f"[red]{e.code}: {e}[/red]")
        sys.exit(2)

    if not records:
        console.print(f"[yellow]No sales tax rates found for {location.describe()}[/yellow]")
        return

    table = Table(
        title=f"Rates for {location.describe()} ({category})",
        box=box.ROUNDED,
    )
    table.add_column("Jurisdiction", style="bold")
    table.add_column("Code", style="dim")
    table.add_column("Type")
    table.add_column("Rate", justify="right")
    table.add_column("Effective")
    table.add_column("Expires")
    table.add_column("Exempt", justify="center")

    combined = Decimal("0")
    for r in records:
        exempt = r.is_exempt_for(category)
        rate = r.rate_for(category)
        combined += rate
        table.add_row(
            r.label,
            r.jurisdiction_code,
            r.jurisdiction_type.value,
            f"{rate:.3%}",
            r.effective_date.isoformat(),
            r.expiration_date.isoformat() if r.expiration_date else "-",
            "Y" if exempt else "",
            style="dim" if exempt else "",
        )
    console.print(table)
    console.print(f"\n[bold]Combined rate: {combined:.3%}[/bold]")


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sales-tax-engine",
        description="Sales Tax Engine - Multi-jurisdiction rate resolution and tax calculation",
    )
    parser.add_argument(
        "--rates-csv",
        default=None,
        help="CSV rate file to use instead of the built-in rate table",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # calculate
    calc_p = subparsers.add_parser("calculate", help="Calculate sales tax")
    calc_p.add_argument("--amount", help="Sale amount")
    calc_p.add_argument("--state", help="Two-letter state code")
    calc_p.add_argument("--city", help="City name for local rate lookup")
    calc_p.add_argument("--zip", help="ZIP code (optional)")
    calc_p.add_argument("--category", help="Item tax category")
    calc_p.add_argument("--date", help="Transaction date (YYYY-MM-DD)")
    calc_p.add_argument(
        "--exempt", action="store_true", help="Customer is tax exempt"
    )
    calc_p.add_argument(
        "--business-state",
        help="Seller home state; sales elsewhere are treated as no-nexus",
    )
    calc_p.add_argument("--file", "-f", help="JSON file with a calculation request")
    calc_p.add_argument("--json", action="store_true", help="Print the result as JSON")
    calc_p.set_defaults(func=cmd_calculate)

    # rates
    rates_p = subparsers.add_parser("rates", help="View rates for a location")
    rates_p.add_argument("--state", "-s", required=True, help="State code to look up")
    rates_p.add_argument("--city", help="City name")
    rates_p.add_argument("--category", default="general", help="Tax category")
    rates_p.add_argument("--date", help="As-of date (YYYY-MM-DD)")
    rates_p.set_defaults(func=cmd_rates)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(level=(args.log_level or settings.log_level).upper())
    if args.rates_csv is None:
        args.rates_csv = settings.rates_csv

    args.func(args)
