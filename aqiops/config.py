"""Process configuration read from environment variables."""

from __future__ import annotations

import os
from typing import List, Optional

from pydantic import BaseModel, Field


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    """Runtime settings for the service and its upstream adapters.

    Missing provider keys are not an error: the corresponding adapter
    reports itself as unavailable and the aggregator skips it.
    """

    iqair_api_key: Optional[str] = None
    purpleair_api_key: Optional[str] = None
    iqair_base_url: str = "https://api.airvisual.com/v2"
    purpleair_base_url: str = "https://api.purpleair.com/v1"
    upstream_timeout: float = Field(default=10.0, gt=0)
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    api_key: Optional[str] = None
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            iqair_api_key=os.getenv("IQAIR_API_KEY") or None,
            purpleair_api_key=os.getenv("PURPLEAIR_API_KEY") or None,
            iqair_base_url=os.getenv("IQAIR_API_BASE_URL", "https://api.airvisual.com/v2"),
            purpleair_base_url=os.getenv(
                "PURPLEAIR_API_BASE_URL", "https://api.purpleair.com/v1"
            ),
            upstream_timeout=_env_float("UPSTREAM_TIMEOUT", 10.0),
            cache_ttl_seconds=_env_float("CACHE_TTL_SECONDS", 300.0),
            api_key=os.getenv("API_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
