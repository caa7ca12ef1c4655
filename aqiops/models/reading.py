"""Pydantic models for normalized air quality readings.

Every adapter produces ``NormalizedReading`` instances regardless of the
upstream payload shape.  Records are frozen; derived values such as the
distance to a query point are applied with ``model_copy``.  The
severity ``category`` is never stored: it is computed from the US index
each time it is read or serialized.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from aqiops.models.category import Category


class _Record(BaseModel):
    """Frozen record serialized with camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Coordinate(_Record):
    """Latitude/longitude pair in decimal degrees."""

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class AirQualityIndex(_Record):
    """US EPA index (mandatory) and China-scale index (best effort)."""

    us: int = Field(ge=0)
    cn: Optional[int] = None


class Pollutants(_Record):
    """Concentrations for the six tracked pollutants; ``None`` when unmeasured."""

    pm25: Optional[float] = None
    pm10: Optional[float] = None
    o3: Optional[float] = None
    no2: Optional[float] = None
    so2: Optional[float] = None
    co: Optional[float] = None


class Weather(_Record):
    """Weather observed alongside a reading (°C, %, hPa, m/s, degrees)."""

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None


class NormalizedReading(_Record):
    """Unified record emitted by every provider adapter."""

    source_name: str
    station_id: str
    display_name: str
    coordinates: Coordinate
    distance_km: Optional[float] = Field(default=None, ge=0)
    air_quality_index: AirQualityIndex
    dominant_pollutant: Optional[str] = None
    pollutants: Pollutants = Field(default_factory=Pollutants)
    weather: Weather = Field(default_factory=Weather)
    observed_at: datetime
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None

    @computed_field
    @property
    def category(self) -> Category:
        from aqiops.aqi import categorize

        return categorize(self.air_quality_index.us)

    def with_distance(self, distance_km: float) -> "NormalizedReading":
        """Return a copy carrying the distance to a query point."""
        return self.model_copy(update={"distance_km": distance_km})


class ProviderCapability(_Record):
    """Static description of what an adapter can do and whether it is usable."""

    name: str
    description: str = ""
    supports_radius_search: bool = False
    supports_free_text_search: bool = False
    supports_browse: bool = False
    requires_api_key: bool = False
    is_available: bool = True
