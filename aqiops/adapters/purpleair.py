"""PurpleAir adapter for the community sensor network.

PurpleAir supports a true bounding-box search, so the adapter asks for
every outdoor sensor inside a box around the query point, computes the
haversine distance for each one client-side and keeps the nearest ten
inside the radius.  Sensors report raw PM2.5 only; the US index is
derived from it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from aqiops.aqi import pm25_to_aqi, pm25_to_aqi_cn
from aqiops.errors import UpstreamUnavailable
from aqiops.geo import bounding_box, distance_km
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

SENSOR_FIELDS = (
    "name",
    "latitude",
    "longitude",
    "pm2.5",
    "pm2.5_10minute",
    "pm2.5_60minute",
    "temperature",
    "humidity",
    "pressure",
    "last_seen",
)

MAX_SENSORS = 10
MAX_AGE_SECONDS = 3600


def _fahrenheit_to_celsius(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round((value - 32) * 5 / 9, 1)


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    seconds = to_int(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class PurpleAirAdapter(AirQualityAdapter):
    """Adapter for the PurpleAir v1 sensors API."""

    name = "purpleair"
    description = "Community-operated air quality sensors"

    def capability(self) -> ProviderCapability:
        return ProviderCapability(
            name=self.name,
            description=self.description,
            supports_radius_search=True,
            supports_free_text_search=False,
            supports_browse=False,
            requires_api_key=True,
            is_available=self.is_available,
        )

    async def fetch_by_coordinate(
        self, point: Coordinate, radius_km: float
    ) -> List[NormalizedReading]:
        """Up to ten outdoor sensors within ``radius_km``, nearest first.

        Raises ``MisconfiguredAdapter`` when no API key is configured;
        callers are expected to check ``capability().is_available`` first.
        """
        key = self._require_key()

        async def load() -> List[NormalizedReading]:
            params: Dict[str, Any] = {
                "fields": ",".join(SENSOR_FIELDS),
                "location_type": 0,
                "max_age": MAX_AGE_SECONDS,
                **bounding_box(point, radius_km),
            }
            response = await self._get(
                "sensors", params=params, headers={"X-API-Key": key}
            )
            if response.status_code >= 400:
                log_warning(
                    "purpleair_api_response_status",
                    status_code=response.status_code,
                    text=response.text[:500],
                )
                raise UpstreamUnavailable(
                    f"purpleair returned HTTP {response.status_code}",
                    {"source": self.name, "status_code": response.status_code},
                )
            payload = self._json(response)
            readings = self._parse_sensors(payload, point)
            nearby = sorted(
                (r for r in readings if r.distance_km <= radius_km),
                key=lambda r: r.distance_km,
            )[:MAX_SENSORS]
            log_info(
                "purpleair_sensors_fetched",
                sensors_in_box=len(readings),
                sensors_returned=len(nearby),
                radius_km=radius_km,
            )
            return nearby

        return await self._cached(("nearby", point.lat, point.lon, radius_km), load)

    def _parse_sensors(self, payload: Any, point: Coordinate) -> List[NormalizedReading]:
        """Turn the columnar ``fields``/``data`` response into readings."""
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(
                "purpleair returned a malformed payload", {"source": self.name}
            )
        fields = payload.get("fields")
        rows = payload.get("data")
        if rows is None:
            return []
        if not isinstance(fields, list) or not isinstance(rows, list):
            raise UpstreamUnavailable(
                "purpleair returned a malformed payload", {"source": self.name}
            )

        fallback_time = _epoch_to_datetime(payload.get("data_time_stamp"))
        readings = []
        for row in rows:
            if not isinstance(row, list):
                continue
            sensor = dict(zip(fields, row))
            reading = self._to_reading(sensor, point, fallback_time)
            if reading is not None:
                readings.append(reading)
        return readings

    def _to_reading(
        self,
        sensor: Dict[str, Any],
        point: Coordinate,
        fallback_time: Optional[datetime],
    ) -> Optional[NormalizedReading]:
        """Normalize one sensor row; ``None`` when it cannot yield a US index."""
        lat = to_float(sensor.get("latitude"))
        lon = to_float(sensor.get("longitude"))
        pm25 = next(
            (
                value
                for value in (
                    to_float(sensor.get("pm2.5_10minute")),
                    to_float(sensor.get("pm2.5")),
                    to_float(sensor.get("pm2.5_60minute")),
                )
                if value is not None
            ),
            None,
        )
        if lat is None or lon is None or pm25 is None:
            log_info(
                "purpleair_sensor_skipped",
                sensor_index=sensor.get("sensor_index"),
                has_coordinates=lat is not None and lon is not None,
                has_pm25=pm25 is not None,
            )
            return None

        pm25 = max(0.0, pm25)
        name = sensor.get("name") or "Unknown Sensor"
        sensor_index = to_int(sensor.get("sensor_index"))
        if sensor_index is not None:
            station_id = f"purpleair-{sensor_index}"
        else:
            station_id = slugify("purpleair", name)
        observed_at = (
            _epoch_to_datetime(sensor.get("last_seen"))
            or fallback_time
            or datetime.now(tz=timezone.utc)
        )

        try:
            coordinates = Coordinate(lat=lat, lon=lon)
            return NormalizedReading(
                source_name=self.name,
                station_id=station_id,
                display_name=name,
                coordinates=coordinates,
                distance_km=distance_km(point, coordinates),
                air_quality_index=AirQualityIndex(
                    us=pm25_to_aqi(pm25), cn=pm25_to_aqi_cn(pm25)
                ),
                dominant_pollutant="pm25",
                pollutants=Pollutants(pm25=pm25),
                weather=Weather(
                    temperature=_fahrenheit_to_celsius(to_float(sensor.get("temperature"))),
                    humidity=to_float(sensor.get("humidity")),
                    pressure=to_float(sensor.get("pressure")),
                ),
                observed_at=observed_at,
            )
        except ValidationError as e:
            log_warning(
                "purpleair_sensor_invalid",
                sensor_index=sensor_index,
                error_count=e.error_count(),
            )
            return None
