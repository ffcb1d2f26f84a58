"""
Effective-dated jurisdiction tax rate records.

A rate record is immutable once published. Records are scoped to one
jurisdiction code and, optionally, to a set of product categories, and are
valid on the half-open window ``[effective_date, expiration_date)``.

Also holds the tax-category vocabulary and the built-in rate table
covering all 50 US states plus DC, with common city surcharges.
Rates current as of 2024 legislative sessions.

Sources: State revenue department publications, Tax Foundation compilations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

RATE_SCALE = Decimal("0.000001")

RateLike = Union[Decimal, str, int]


class JurisdictionType(Enum):
    """Taxing authority level. Unknown names fall into SPECIAL_DISTRICT."""

    FEDERAL = "federal"
    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    SPECIAL_DISTRICT = "special_district"

    @classmethod
    def from_name(cls, name: str) -> "JurisdictionType":
        key = " ".join((name or "").lower().replace("_", " ").split())
        return _JURISDICTION_NAMES.get(key, cls.SPECIAL_DISTRICT)

    @property
    def order(self) -> int:
        return _JURISDICTION_ORDER[self]


_JURISDICTION_NAMES: dict[str, JurisdictionType] = {
    "federal": JurisdictionType.FEDERAL,
    "state": JurisdictionType.STATE,
    "county": JurisdictionType.COUNTY,
    "parish": JurisdictionType.COUNTY,
    "city": JurisdictionType.CITY,
    "special district": JurisdictionType.SPECIAL_DISTRICT,
    "special": JurisdictionType.SPECIAL_DISTRICT,
    "district": JurisdictionType.SPECIAL_DISTRICT,
}

_JURISDICTION_ORDER: dict[JurisdictionType, int] = {
    jt: i for i, jt in enumerate(JurisdictionType)
}


# ---------------------------------------------------------------------------
# Tax categories
# ---------------------------------------------------------------------------

GENERAL_CATEGORY = "general"

TAX_CATEGORIES: frozenset[str] = frozenset(
    {
        GENERAL_CATEGORY,
        "food",
        "clothing",
        "medicine",
        "medical_device",
        "digital",
        "software",
        "manufacturing",
        "agricultural",
        "resale",
    }
)

_CATEGORY_ALIASES: dict[str, str] = {
    "default": GENERAL_CATEGORY,
    "standard": GENERAL_CATEGORY,
    "grocery": "food",
    "groceries": "food",
    "apparel": "clothing",
    "prescription": "medicine",
    "prescription_drug": "medicine",
    "rx": "medicine",
    "medical": "medical_device",
    "digital_goods": "digital",
    "saas": "software",
    "software_saas": "software",
}


def normalize_category(raw: Optional[str]) -> tuple[str, bool]:
    """
    Map a free-form category tag onto the vocabulary.

    Returns ``(category, recognized)``; unrecognized tags map to
    ``general`` with ``recognized=False``.
    """
    key = (raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    if key in TAX_CATEGORIES:
        return key, True
    if key in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[key], True
    return GENERAL_CATEGORY, False


def normalize_scope_tag(raw: str) -> str:
    """
    Canonical form of a category tag carried on a rate record.

    Aliases are applied, but unrecognized tags are kept as written so a
    record scoped to e.g. ``tobacco`` never applies to ``general`` items.
    """
    key = (raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    return _CATEGORY_ALIASES.get(key, key)


# ---------------------------------------------------------------------------
# Jurisdiction codes
# ---------------------------------------------------------------------------

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


def _slug(text: str) -> str:
    return _NON_ALNUM.sub("_", text.upper()).strip("_")


def county_code(state: str, county: str) -> str:
    name = re.sub(r"\s+(county|parish)$", "", county.strip(), flags=re.I)
    if not state or not name:
        return ""
    return f"{state.upper()}-{_slug(name)}_COUNTY"


def city_code(state: str, city: str) -> str:
    if not state or not city.strip():
        return ""
    return f"{state.upper()}-{_slug(city)}"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def to_rate(value: RateLike) -> Decimal:
    """Convert to a fixed-scale rate fraction. Floats are rejected."""
    if isinstance(value, float):
        raise TypeError("Tax rates must not be binary floats; use Decimal or str")
    rate = Decimal(str(value)).quantize(RATE_SCALE)
    if rate < 0:
        raise ValueError(f"Tax rate cannot be negative: {value}")
    return rate


@dataclass(frozen=True)
class CategoryRule:
    """Per-category override on a rate record (reduced rate or exemption)."""

    category: str
    rate: Optional[Decimal] = None
    exempt: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", normalize_scope_tag(self.category))
        if self.rate is not None:
            object.__setattr__(self, "rate", to_rate(self.rate))


@dataclass(frozen=True)
class TaxRateRecord:
    """A single published jurisdiction rate."""

    record_id: str
    jurisdiction_name: str  # State, County, City, Federal, Special District
    jurisdiction_code: str
    rate: Decimal
    effective_date: date
    expiration_date: Optional[date] = None
    product_categories: frozenset[str] = frozenset()
    is_active: bool = True
    category_rules: tuple[CategoryRule, ...] = ()
    display_name: str = ""
    tax_type: str = "sales"
    published_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate", to_rate(self.rate))
        object.__setattr__(
            self,
            "product_categories",
            frozenset(
                normalize_scope_tag(c) for c in self.product_categories if c.strip()
            ),
        )
        object.__setattr__(self, "category_rules", tuple(self.category_rules))
        if (
            self.expiration_date is not None
            and self.expiration_date <= self.effective_date
        ):
            raise ValueError(
                f"Rate {self.record_id} expires before it takes effect"
            )

    @property
    def jurisdiction_type(self) -> JurisdictionType:
        return JurisdictionType.from_name(self.jurisdiction_name)

    @property
    def label(self) -> str:
        return self.display_name or self.jurisdiction_name

    @property
    def is_category_scoped(self) -> bool:
        return bool(self.product_categories)

    def is_effective_on(self, day: date) -> bool:
        if not self.is_active or day < self.effective_date:
            return False
        return self.expiration_date is None or day < self.expiration_date

    def applies_to(self, category: str) -> bool:
        return not self.product_categories or category in self.product_categories

    def _rule(self, category: str) -> Optional[CategoryRule]:
        for rule in self.category_rules:
            if rule.category == category:
                return rule
        return None

    def is_exempt_for(self, category: str) -> bool:
        rule = self._rule(category)
        return rule is not None and rule.exempt

    def rate_for(self, category: str) -> Decimal:
        """Rate levied on ``category``; zero when the category is exempt."""
        rule = self._rule(category)
        if rule is None:
            return self.rate
        if rule.exempt:
            return Decimal("0").quantize(RATE_SCALE)
        return rule.rate if rule.rate is not None else self.rate


# ---------------------------------------------------------------------------
# Built-in 50-state + DC rate table
#   state: (name, base rate, categories exempt statewide)
#   locals: (city, county, local rate[, jurisdiction name])
# ---------------------------------------------------------------------------

BUILTIN_EFFECTIVE_DATE = date(2024, 1, 1)

_RX = "medicine"
_FOOD_RX = ("food", "medicine")

_STATE_TABLE: dict[str, tuple[str, str, tuple[str, ...]]] = {
    "AL": ("Alabama", "0.04", (_RX,)),
    "AK": ("Alaska", "0", ()),
    "AZ": ("Arizona", "0.056", _FOOD_RX),
    "AR": ("Arkansas", "0.065", (_RX,)),
    "CA": ("California", "0.0725", _FOOD_RX),
    "CO": ("Colorado", "0.029", _FOOD_RX),
    "CT": ("Connecticut", "0.0635", ("food", "clothing", _RX)),
    "DE": ("Delaware", "0", ()),
    "FL": ("Florida", "0.06", ("food", _RX, "medical_device")),
    "GA": ("Georgia", "0.04", _FOOD_RX),
    "HI": ("Hawaii", "0.04", (_RX,)),
    "ID": ("Idaho", "0.06", _FOOD_RX),
    "IL": ("Illinois", "0.0625", ("food", _RX, "medical_device")),
    "IN": ("Indiana", "0.07", _FOOD_RX),
    "IA": ("Iowa", "0.06", _FOOD_RX),
    "KS": ("Kansas", "0.065", (_RX,)),
    "KY": ("Kentucky", "0.06", _FOOD_RX),
    "LA": ("Louisiana", "0.0445", _FOOD_RX),
    "ME": ("Maine", "0.055", _FOOD_RX),
    "MD": ("Maryland", "0.06", ("food", "clothing", _RX, "medical_device")),
    "MA": ("Massachusetts", "0.0625", ("food", "clothing", _RX)),
    "MI": ("Michigan", "0.06", _FOOD_RX),
    "MN": ("Minnesota", "0.06875", ("food", "clothing", _RX)),
    "MS": ("Mississippi", "0.07", (_RX,)),
    "MO": ("Missouri", "0.04225", _FOOD_RX),
    "MT": ("Montana", "0", ()),
    "NE": ("Nebraska", "0.055", _FOOD_RX),
    "NV": ("Nevada", "0.0685", _FOOD_RX),
    "NH": ("New Hampshire", "0", ()),
    "NJ": ("New Jersey", "0.06625", ("food", "clothing", _RX, "medical_device")),
    "NM": ("New Mexico", "0.04875", _FOOD_RX),
    "NY": ("New York", "0.04", ("food", "clothing", _RX)),
    "NC": ("North Carolina", "0.0475", _FOOD_RX),
    "ND": ("North Dakota", "0.05", _FOOD_RX),
    "OH": ("Ohio", "0.0575", _FOOD_RX),
    "OK": ("Oklahoma", "0.045", (_RX,)),
    "OR": ("Oregon", "0", ()),
    "PA": ("Pennsylvania", "0.06", ("food", "clothing", _RX)),
    "RI": ("Rhode Island", "0.07", ("food", "clothing", _RX)),
    "SC": ("South Carolina", "0.06", _FOOD_RX),
    "SD": ("South Dakota", "0.042", (_RX,)),
    "TN": ("Tennessee", "0.07", (_RX,)),
    "TX": ("Texas", "0.0625", ("food", _RX, "medical_device")),
    "UT": ("Utah", "0.0485", (_RX,)),
    "VT": ("Vermont", "0.06", ("food", "clothing", _RX)),
    "VA": ("Virginia", "0.043", _FOOD_RX),
    "WA": ("Washington", "0.065", _FOOD_RX),
    "WV": ("West Virginia", "0.06", _FOOD_RX),
    "WI": ("Wisconsin", "0.05", _FOOD_RX),
    "WY": ("Wyoming", "0.04", _FOOD_RX),
    "DC": ("District of Columbia", "0.06", _FOOD_RX),
}

_LOCAL_TABLE: dict[str, tuple[tuple[str, ...], ...]] = {
    "AL": (
        ("Birmingham", "Jefferson", "0.04"),
        ("Montgomery", "Montgomery", "0.035"),
        ("Mobile", "Mobile", "0.04"),
        ("Huntsville", "Madison", "0.03"),
    ),
    "AK": (("Juneau", "Juneau", "0.05"), ("Kodiak", "Kodiak Island", "0.07")),
    "AZ": (
        ("Phoenix", "Maricopa", "0.023"),
        ("Tucson", "Pima", "0.026"),
        ("Scottsdale", "Maricopa", "0.0175"),
        ("Mesa", "Maricopa", "0.0175"),
    ),
    "AR": (("Little Rock", "Pulaski", "0.03"), ("Fort Smith", "Sebastian", "0.0275")),
    "CA": (
        ("Los Angeles", "Los Angeles", "0.025"),
        ("San Francisco", "San Francisco", "0.0125"),
        ("San Diego", "San Diego", "0.0075"),
        ("San Jose", "Santa Clara", "0.0125"),
        ("Sacramento", "Sacramento", "0.0075"),
    ),
    "CO": (
        ("Denver", "Denver", "0.0481"),
        ("Colorado Springs", "El Paso", "0.031"),
        ("Aurora", "Arapahoe", "0.0375"),
    ),
    "FL": (
        ("Miami", "Miami-Dade", "0.01"),
        ("Orlando", "Orange", "0.005"),
        ("Tampa", "Hillsborough", "0.015"),
        ("Jacksonville", "Duval", "0.005"),
    ),
    "GA": (("Atlanta", "Fulton", "0.0389"), ("Savannah", "Chatham", "0.04")),
    "HI": (("Honolulu", "Honolulu", "0.005"),),
    "ID": (("Sun Valley", "Blaine", "0.03", "Special District"),),
    "IL": (
        ("Chicago", "Cook", "0.0475"),
        ("Springfield", "Sangamon", "0.0225"),
        ("Naperville", "DuPage", "0.0175"),
    ),
    "IA": (("Des Moines", "Polk", "0.01"), ("Cedar Rapids", "Linn", "0.01")),
    "KS": (("Wichita", "Sedgwick", "0.0225"), ("Topeka", "Shawnee", "0.0215")),
    "LA": (("New Orleans", "Orleans", "0.05"), ("Baton Rouge", "East Baton Rouge", "0.05")),
    "MN": (("Minneapolis", "Hennepin", "0.02"), ("St. Paul", "Ramsey", "0.0175")),
    "MS": (("Jackson", "Hinds", "0.01"),),
    "MO": (
        ("St. Louis City", "St. Louis City", "0.049"),
        ("Kansas City", "Jackson", "0.04"),
        ("Springfield", "Greene", "0.0335"),
    ),
    "NE": (("Omaha", "Douglas", "0.02"), ("Lincoln", "Lancaster", "0.0175")),
    "NV": (("Las Vegas", "Clark", "0.0138"), ("Reno", "Washoe", "0.0098")),
    "NM": (("Albuquerque", "Bernalillo", "0.0281"), ("Santa Fe", "Santa Fe", "0.0344")),
    "NY": (
        ("New York City", "New York", "0.045"),
        ("Buffalo", "Erie", "0.04"),
        ("Albany", "Albany", "0.04"),
        ("Syracuse", "Onondaga", "0.04"),
    ),
    "NC": (
        ("Charlotte", "Mecklenburg", "0.025"),
        ("Raleigh", "Wake", "0.0225"),
        ("Durham", "Durham", "0.025"),
    ),
    "ND": (("Fargo", "Cass", "0.025"), ("Bismarck", "Burleigh", "0.02")),
    "OH": (
        ("Columbus", "Franklin", "0.0175"),
        ("Cleveland", "Cuyahoga", "0.0225"),
        ("Cincinnati", "Hamilton", "0.02"),
    ),
    "OK": (("Oklahoma City", "Oklahoma", "0.0413"), ("Tulsa", "Tulsa", "0.0467")),
    "PA": (("Philadelphia", "Philadelphia", "0.02"), ("Pittsburgh", "Allegheny", "0.01")),
    "SC": (("Charleston", "Charleston", "0.025"), ("Columbia", "Richland", "0.02")),
    "SD": (("Sioux Falls", "Minnehaha", "0.02"), ("Rapid City", "Pennington", "0.02")),
    "TN": (
        ("Nashville", "Davidson", "0.0225"),
        ("Memphis", "Shelby", "0.0225"),
        ("Knoxville", "Knox", "0.0225"),
    ),
    "TX": (
        ("Houston", "Harris", "0.02"),
        ("Dallas", "Dallas", "0.02"),
        ("Austin", "Travis", "0.02"),
        ("San Antonio", "Bexar", "0.02"),
        ("Fort Worth", "Tarrant", "0.02"),
    ),
    "UT": (("Salt Lake City", "Salt Lake", "0.0235"), ("Provo", "Utah", "0.0225")),
    "VT": (("Burlington", "Chittenden", "0.01"),),
    "VA": (
        ("Virginia Beach", "Virginia Beach", "0.017"),
        ("Richmond", "Richmond City", "0.017"),
        ("Norfolk", "Norfolk", "0.017"),
    ),
    "WA": (
        ("Seattle", "King", "0.0375"),
        ("Tacoma", "Pierce", "0.028"),
        ("Spokane", "Spokane", "0.024"),
    ),
    "WV": (("Charleston", "Kanawha", "0.01"),),
    "WI": (("Milwaukee", "Milwaukee", "0.0175"), ("Madison", "Dane", "0.005")),
    "WY": (("Cheyenne", "Laramie", "0.01"), ("Casper", "Natrona", "0.015")),
}

STATE_NAMES: dict[str, str] = {
    code: entry[0] for code, entry in _STATE_TABLE.items()
}


def builtin_county_index() -> dict[tuple[str, str], str]:
    """Map ``(state, lower-cased city)`` to county name for known cities."""
    return {
        (state, local[0].lower()): local[1]
        for state, locals_ in _LOCAL_TABLE.items()
        for local in locals_
    }


def _exempt_rules(categories: Iterable[str]) -> tuple[CategoryRule, ...]:
    return tuple(CategoryRule(c, exempt=True) for c in categories)


def builtin_rate_records(
    effective_date: date = BUILTIN_EFFECTIVE_DATE,
) -> list[TaxRateRecord]:
    """Build open-ended records for the built-in table."""
    records: list[TaxRateRecord] = []
    for state, (name, base_rate, exempt) in _STATE_TABLE.items():
        rules = _exempt_rules(exempt)
        if Decimal(base_rate) > 0:
            records.append(
                TaxRateRecord(
                    record_id=f"{state}:state:{effective_date.isoformat()}",
                    jurisdiction_name="State",
                    jurisdiction_code=state,
                    rate=base_rate,
                    effective_date=effective_date,
                    category_rules=rules,
                    display_name=name,
                )
            )
        for local in _LOCAL_TABLE.get(state, ()):
            city, _county, rate = local[:3]
            kind = local[3] if len(local) > 3 else "City"
            code = city_code(state, city)
            records.append(
                TaxRateRecord(
                    record_id=f"{code}:{_slug(kind).lower()}:{effective_date.isoformat()}",
                    jurisdiction_name=kind,
                    jurisdiction_code=code,
                    rate=rate,
                    effective_date=effective_date,
                    category_rules=rules,
                    display_name=city if kind == "City" else f"{city} {kind}",
                )
            )
    return records
