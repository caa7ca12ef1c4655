"""IQAir (AirVisual) adapter for the professional monitoring network.

IQAir has no radius search: ``nearest_city`` returns a single station
for a coordinate.  Named lookups require an exact city/state/country
triple, which the resolver service works around.  Country, state and
city listings support hierarchical browsing.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from aqiops.errors import NotFound, UpstreamUnavailable
from aqiops.geo import distance_km
from aqiops.middleware.logging import log_info, log_warning
from aqiops.models.reading import (
    AirQualityIndex,
    Coordinate,
    NormalizedReading,
    Pollutants,
    ProviderCapability,
    Weather,
)

from .base import AirQualityAdapter, slugify, to_float, to_int

# IQAir pollutant codes -> normalized pollutant keys.
POLLUTANT_CODES = {
    "p2": "pm25",
    "p1": "pm10",
    "o3": "o3",
    "n2": "no2",
    "s2": "so2",
    "co": "co",
}

NOT_FOUND_MESSAGES = {"city_not_found", "no_nearest_station", "not_found"}


class IQAirAdapter(AirQualityAdapter):
    """Adapter for the IQAir AirVisual v2 API."""

    name = "iqair"
    description = "Professional air quality monitoring stations worldwide"

    def capability(self) -> ProviderCapability:
        return ProviderCapability(
            name=self.name,
            description=self.description,
            supports_radius_search=False,
            supports_free_text_search=False,
            supports_browse=True,
            requires_api_key=True,
            is_available=self.is_available,
        )

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------
    async def fetch_nearest(self, point: Coordinate) -> NormalizedReading:
        """Nearest station to ``point`` regardless of distance."""

        async def load() -> NormalizedReading:
            data = await self._call(
                "nearest_city", {"lat": point.lat, "lon": point.lon}
            )
            return self._to_reading(data)

        reading = await self._cached(("nearest", point.lat, point.lon), load)
        return reading.with_distance(distance_km(point, reading.coordinates))

    async def fetch_by_coordinate(
        self, point: Coordinate, radius_km: float
    ) -> List[NormalizedReading]:
        """Nearest station wrapped in a list, or empty if it lies beyond the radius."""
        try:
            nearest = await self.fetch_nearest(point)
        except NotFound:
            return []
        if nearest.distance_km is not None and nearest.distance_km <= radius_km:
            return [nearest]
        log_info(
            "iqair_nearest_outside_radius",
            station_id=nearest.station_id,
            distance_km=nearest.distance_km,
            radius_km=radius_km,
        )
        return []

    async def fetch_by_name(
        self, city: str, region: Optional[str], country: str
    ) -> NormalizedReading:
        """Exact city lookup; raises ``NotFound`` when the triple does not match."""
        params: Dict[str, Any] = {"city": city, "country": country}
        if region:
            params["state"] = region

        async def load() -> NormalizedReading:
            return self._to_reading(await self._call("city", params))

        return await self._cached(("city", city, region, country), load)

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------
    async def list_countries(self) -> List[str]:
        async def load() -> List[str]:
            rows = await self._call("countries", {})
            return self._names(rows, "country")

        return await self._cached(("countries",), load)

    async def list_regions(self, country: str) -> List[str]:
        async def load() -> List[str]:
            rows = await self._call("states", {"country": country})
            return self._names(rows, "state")

        return await self._cached(("states", country), load)

    async def list_cities(self, region: str, country: str) -> List[str]:
        async def load() -> List[str]:
            rows = await self._call("cities", {"state": region, "country": country})
            return self._names(rows, "city")

        return await self._cached(("cities", region, country), load)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _call(self, path: str, params: Dict[str, Any]) -> Any:
        """Call an IQAir endpoint and return its ``data`` member.

        IQAir wraps every response as ``{"status": ..., "data": ...}``; a
        failure carries ``data.message``.  Not-found messages become
        ``NotFound``, everything else ``UpstreamUnavailable``.
        """
        key = self._require_key()
        response = await self._get(path, params={**params, "key": key})
        payload = self._json(response)
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(
                "iqair returned a malformed payload", {"source": self.name}
            )

        data = payload.get("data")
        if payload.get("status") == "success" and response.status_code < 400:
            return data

        message = ""
        if isinstance(data, dict):
            message = str(data.get("message") or "")
        details = {
            "source": self.name,
            "status_code": response.status_code,
            "message": message,
            "query": params,
        }
        if message.lower() in NOT_FOUND_MESSAGES:
            raise NotFound(f"iqair: {message}", details)
        log_warning("iqair_api_failure", **details)
        raise UpstreamUnavailable(f"iqair request failed: {message or 'unknown error'}", details)

    def _names(self, rows: Any, field: str) -> List[str]:
        if not isinstance(rows, list):
            raise UpstreamUnavailable(
                f"iqair returned a malformed {field} list", {"source": self.name}
            )
        return [str(row[field]) for row in rows if isinstance(row, dict) and row.get(field)]

    def _to_reading(self, data: Any) -> NormalizedReading:
        """Normalize an IQAir city payload, rejecting it when no US index exists."""
        try:
            city = data["city"]
            state = data.get("state") or None
            country = data["country"]
            location = data.get("location") or {}
            lon, lat = location["coordinates"][:2]
            current = data["current"]
            pollution = current["pollution"]
            weather = current.get("weather") or {}
            if not isinstance(pollution, dict) or not isinstance(weather, dict):
                raise TypeError("pollution and weather must be objects")
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                "iqair payload is missing required fields", {"source": self.name}
            ) from e

        aqi_us = to_int(pollution.get("aqius"))
        if aqi_us is None or aqi_us < 0:
            raise UpstreamUnavailable(
                "iqair payload has no US AQI", {"source": self.name, "city": city}
            )

        main = pollution.get("mainus")
        display = ", ".join(p for p in (city, state, country) if p)
        try:
            return NormalizedReading(
                source_name=self.name,
                station_id=slugify(city, state, country),
                display_name=display,
                coordinates=Coordinate(lat=to_float(lat), lon=to_float(lon)),
                air_quality_index=AirQualityIndex(
                    us=aqi_us, cn=to_int(pollution.get("aqicn"))
                ),
                dominant_pollutant=POLLUTANT_CODES.get(main, main),
                # The basic plan does not expose per-pollutant concentrations.
                pollutants=Pollutants(),
                weather=Weather(
                    temperature=to_float(weather.get("tp")),
                    humidity=to_float(weather.get("hu")),
                    pressure=to_float(weather.get("pr")),
                    wind_speed=to_float(weather.get("ws")),
                    wind_direction=to_float(weather.get("wd")),
                ),
                observed_at=pollution.get("ts"),
                city=city,
                region=state,
                country=country,
                timezone=location.get("timezone"),
            )
        except ValidationError as e:
            raise UpstreamUnavailable(
                "iqair payload failed validation",
                {"source": self.name, "error_count": e.error_count()},
            ) from e
