"""
Nexus evaluation.

A business must collect tax in a state only where it has nexus: the state
is its home state or one of its registered nexus states. Unknown businesses
are an error, never "no nexus".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, runtime_checkable

from salestax_engine.exceptions import EntityNotFound


@dataclass(frozen=True)
class BusinessProfile:
    """The slice of a business record the engine needs."""

    business_id: str
    home_state: str = ""
    nexus_states: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "home_state", self.home_state.strip().upper())
        object.__setattr__(
            self,
            "nexus_states",
            frozenset(s.strip().upper() for s in self.nexus_states if s.strip()),
        )

    def has_nexus_in(self, state_code: str) -> bool:
        state = (state_code or "").strip().upper()
        if not state:
            return False
        return state == self.home_state or state in self.nexus_states


@runtime_checkable
class BusinessDirectory(Protocol):
    async def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        ...


class InMemoryBusinessDirectory:
    def __init__(self, profiles: Iterable[BusinessProfile] = ()) -> None:
        self._profiles: dict[str, BusinessProfile] = {
            p.business_id: p for p in profiles
        }

    def register(self, profile: BusinessProfile) -> None:
        self._profiles[profile.business_id] = profile

    async def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        return self._profiles.get(business_id)


class NexusEvaluator:
    """Decides whether a business must collect tax in a state."""

    def __init__(self, directory: BusinessDirectory) -> None:
        self.directory = directory

    async def profile(self, business_id: str) -> BusinessProfile:
        profile = await self.directory.get_business(business_id)
        if profile is None:
            raise EntityNotFound("Business", business_id)
        return profile

    async def has_nexus(self, business_id: str, state_code: str) -> bool:
        profile = await self.profile(business_id)
        return profile.has_nexus_in(state_code)
