"""
Engine settings.

Values come from environment variables with the ``SALESTAX_`` prefix,
e.g. ``SALESTAX_CACHE_TTL_SECONDS=120``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunables for the rate cache, store access and anomaly detection."""

    model_config = SettingsConfigDict(env_prefix="SALESTAX_")

    # Rate cache
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_entries: int = Field(default=4096, gt=0)

    # Rate store
    store_timeout_seconds: Optional[float] = Field(default=2.0, gt=0)

    # Effective-rate anomaly detection
    deviation_threshold: float = Field(default=0.5, gt=0)
    deviation_min_samples: int = Field(default=10, ge=1)

    log_level: str = "INFO"
    rates_csv: Optional[str] = None
    default_category: str = "general"


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings()
