"""
Typed exceptions raised by the tax calculation engine.

Every error carries a machine-readable ``code`` so the calling service
layer can map it to a response without parsing messages:

    TaxEngineError
    +-- EntityNotFound        unknown business/context (4xx, not retried)
    +-- InvalidLocation       sale location has no resolvable country (4xx)
    +-- TransientStoreError   rate store timeout/connectivity (5xx, retryable)

Data anomalies such as overlapping rate records are not exceptions; they
are reported through the audit sink and the calculation proceeds.
"""

from __future__ import annotations

from typing import Optional


class TaxEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "TAX_ENGINE_ERROR"
    retryable: bool = False


class EntityNotFound(TaxEngineError):
    """The business (or other calculation context) does not exist."""

    code = "ENTITY_NOT_FOUND"

    def __init__(self, entity: str, identifier: str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class InvalidLocation(TaxEngineError):
    """The sale location cannot be resolved to at least a country."""

    code = "INVALID_LOCATION"

    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__(f"Unable to resolve location: {location!r}")


class TransientStoreError(TaxEngineError):
    """The rate store timed out or could not be reached."""

    code = "TRANSIENT_STORE_ERROR"
    retryable = True

    def __init__(
        self, message: str, jurisdiction_code: Optional[str] = None
    ) -> None:
        self.jurisdiction_code = jurisdiction_code
        super().__init__(message)
