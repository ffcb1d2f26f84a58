"""
Sales Tax Engine
================

Multi-jurisdiction sales tax rate resolution and calculation for
businesses selling into many US states, counties, cities and special
districts.

Modules:
    rates           - Effective-dated rate records and the built-in rate table
    repository      - Rate store protocol, in-memory store and CSV loading
    cache           - TTL rate cache with single-flight loading
    jurisdiction    - Address / location resolution to jurisdiction codes
    nexus           - Business nexus evaluation
    selector        - Effective-dated, category-scoped rate selection
    exemptions      - Customer and category exemption rules
    aggregator      - Breakdowns that foot to the cent
    calculator      - Tax calculation facade
    audit           - Anomaly events and effective-rate monitoring
    cli             - Command-line interface
"""

__version__ = "1.0.0"

from salestax_engine.calculator import LineItem, TaxCalculationRequest, TaxCalculator
from salestax_engine.aggregator import TaxBreakdown
from salestax_engine.jurisdiction import Address, JurisdictionResolver
from salestax_engine.nexus import BusinessProfile, InMemoryBusinessDirectory
from salestax_engine.rates import JurisdictionType, TaxRateRecord
from salestax_engine.repository import InMemoryRateRepository
from salestax_engine.exceptions import (
    EntityNotFound,
    InvalidLocation,
    TaxEngineError,
    TransientStoreError,
)

__all__ = [
    "Address",
    "BusinessProfile",
    "EntityNotFound",
    "InMemoryBusinessDirectory",
    "InMemoryRateRepository",
    "InvalidLocation",
    "JurisdictionResolver",
    "JurisdictionType",
    "LineItem",
    "TaxBreakdown",
    "TaxCalculationRequest",
    "TaxCalculator",
    "TaxEngineError",
    "TaxRateRecord",
    "TransientStoreError",
]
