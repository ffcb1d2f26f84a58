"""
Jurisdiction resolution.

Turns a structured address or a free-form location string into the
jurisdiction codes in play for a sale. Resolution never raises: any part
that cannot be resolved comes back as an empty string, meaning "no
jurisdiction at this level".

ZIP codes are optional. A valid ZIP is normalized to five digits and kept
for reference; a missing or malformed one is ignored and never causes a
rejection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from salestax_engine.rates import (
    STATE_NAMES,
    builtin_county_index,
    city_code,
    county_code,
)

_ZIP_RE = re.compile(r"^(\d{5})(?:-?\d{4})?$")
_COUNTRY_RE = re.compile(r"^[A-Z]{2,3}$")

_US_ALIASES = frozenset(
    {"US", "USA", "U.S.", "U.S.A.", "UNITED STATES", "UNITED STATES OF AMERICA", "AMERICA"}
)
_STATE_BY_NAME: dict[str, str] = {
    name.upper(): code for code, name in STATE_NAMES.items()
}


@dataclass(frozen=True)
class Address:
    """Structured sale or customer address."""

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    county: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Address":
        def _get(*keys: str) -> str:
            for k in keys:
                if data.get(k):
                    return str(data[k]).strip()
            return ""

        return cls(
            street=_get("street"),
            city=_get("city"),
            state=_get("state"),
            zip_code=_get("zipCode", "zip_code", "zip"),
            country=_get("country"),
            county=_get("county"),
        )

    def describe(self) -> str:
        return ", ".join(
            p for p in (self.city, self.state, self.zip_code, self.country) if p
        )


@dataclass(frozen=True)
class ResolvedJurisdictions:
    """Normalized location and the jurisdiction codes derived from it."""

    country: str = ""
    state: str = ""
    county: str = ""
    city: str = ""
    zip_code: str = ""

    @property
    def federal_code(self) -> str:
        return self.country

    @property
    def state_code(self) -> str:
        return self.state

    @property
    def county_code(self) -> str:
        return county_code(self.state, self.county)

    @property
    def city_code(self) -> str:
        return city_code(self.state, self.city)

    @property
    def codes(self) -> tuple[str, str, str, str]:
        """Federal, state, county and city codes; empty where unresolved."""
        if not self.country:
            return ("", "", "", "")
        return (self.federal_code, self.state_code, self.county_code, self.city_code)

    @property
    def is_resolved(self) -> bool:
        return bool(self.country)


Location = Union[Address, Mapping[str, Any], str, None]


def normalize_country(raw: str) -> str:
    value = " ".join(raw.strip().upper().split())
    if not value:
        return ""
    if value in _US_ALIASES:
        return "US"
    value = value.replace(".", "")
    return value if _COUNTRY_RE.match(value) else ""


def normalize_state(raw: str, country: str = "") -> str:
    value = " ".join(raw.strip().upper().split())
    if not value:
        return ""
    if country in ("", "US"):
        if value in STATE_NAMES:
            return value
        return _STATE_BY_NAME.get(value, "")
    value = re.sub(r"[^A-Z0-9]+", "_", value).strip("_")
    return value


def normalize_zip(raw: str) -> str:
    match = _ZIP_RE.match(raw.strip())
    return match.group(1) if match else ""


class JurisdictionResolver:
    """Resolves locations to jurisdiction codes using a city→county index."""

    def __init__(
        self, county_index: Optional[Mapping[tuple[str, str], str]] = None
    ) -> None:
        self._county_index = dict(
            builtin_county_index() if county_index is None else county_index
        )

    def resolve(self, location: Location) -> ResolvedJurisdictions:
        if location is None:
            return ResolvedJurisdictions()
        if isinstance(location, str):
            address = self.parse_location(location)
        elif isinstance(location, Address):
            address = location
        elif isinstance(location, Mapping):
            address = Address.from_dict(location)
        else:
            return ResolvedJurisdictions()
        return self._resolve_address(address)

    def _resolve_address(self, address: Address) -> ResolvedJurisdictions:
        country = normalize_country(address.country)
        state = normalize_state(address.state, country)
        if not country and state in STATE_NAMES:
            country = "US"
        if not country:
            return ResolvedJurisdictions(zip_code=normalize_zip(address.zip_code))

        city = " ".join(address.city.split())
        county = " ".join(address.county.split())
        if not county and state and city:
            county = self._county_index.get((state, city.lower()), "")

        return ResolvedJurisdictions(
            country=country,
            state=state,
            county=county if state else "",
            city=city if state else "",
            zip_code=normalize_zip(address.zip_code),
        )

    @staticmethod
    def parse_location(location: str) -> Address:
        """
        Parse a free-form location such as "Austin, TX",
        "Los Angeles, CA 90012" or "Los Angeles, CA, Los Angeles, USA".

        Layout is ``city, state [zip], county, country``; a trailing part that
        names a country is taken as the country wherever it appears.
        """
        parts = [p.strip() for p in (location or "").split(",") if p.strip()]
        if not parts:
            return Address()

        country = ""
        if len(parts) > 1 and normalize_country(parts[-1]) and (
            parts[-1].upper() in _US_ALIASES or len(parts) == 4
        ):
            country = parts.pop()

        if len(parts) == 1:
            state, zip_code = _split_state_zip(parts[0])
            if normalize_state(state, normalize_country(country)):
                return Address(state=state, zip_code=zip_code, country=country)
            return Address(city=parts[0], country=country)

        state, zip_code = _split_state_zip(parts[1])
        return Address(
            city=parts[0],
            state=state,
            zip_code=zip_code,
            county=parts[2] if len(parts) > 2 else "",
            country=country,
        )


def _split_state_zip(text: str) -> tuple[str, str]:
    tokens = text.split()
    if len(tokens) > 1 and normalize_zip(tokens[-1]):
        return " ".join(tokens[:-1]), tokens[-1]
    return text, ""
