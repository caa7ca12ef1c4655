"""Shared fixtures and stubs for the test suite."""

import math
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx

from aqiops.adapters.base import AirQualityAdapter
from aqiops.cache import TTLCache
from aqiops.errors import NotFound, UpstreamUnavailable
from aqiops.models import (
    AirQualityIndex,
    Coordinate,
    NormalizedReading,
    ProviderCapability,
)

IQAIR_BASE = "https://iqair.test/v2"
PURPLEAIR_BASE = "https://purpleair.test/v1"

BANGKOK = Coordinate(lat=13.75, lon=100.5)


def north_of(point: Coordinate, km: float) -> Coordinate:
    """Point ``km`` kilometres due north of ``point`` (exact along a meridian)."""
    return Coordinate(lat=point.lat + math.degrees(km / 6371.0), lon=point.lon)


def iqair_city_payload(
    city: str = "Bangkok",
    state: Optional[str] = "Bangkok",
    country: str = "Thailand",
    lat: float = 13.75,
    lon: float = 100.5,
    aqius: Optional[int] = 87,
    aqicn: Optional[int] = 38,
    mainus: str = "p2",
) -> dict:
    pollution = {"ts": "2024-03-01T06:00:00.000Z", "mainus": mainus, "aqicn": aqicn, "maincn": "p2"}
    if aqius is not None:
        pollution["aqius"] = aqius
    return {
        "status": "success",
        "data": {
            "city": city,
            "state": state,
            "country": country,
            "location": {"type": "Point", "coordinates": [lon, lat]},
            "current": {
                "pollution": pollution,
                "weather": {"ts": "2024-03-01T06:00:00.000Z", "tp": 33, "pr": 1008, "hu": 55, "ws": 3.6, "wd": 180, "ic": "01d"},
            },
        },
    }


def iqair_fail(message: str) -> dict:
    return {"status": "fail", "data": {"message": message}}


def purpleair_payload(sensors: List[dict], timestamp: int = 1709272800) -> dict:
    fields = ["sensor_index", "name", "latitude", "longitude", "pm2.5", "pm2.5_10minute",
              "pm2.5_60minute", "temperature", "humidity", "pressure", "last_seen"]
    rows = [[s.get(f) for f in fields] for s in sensors]
    return {"api_version": "V1.0.11", "data_time_stamp": timestamp, "fields": fields, "data": rows}


class Recorder:
    """``httpx.MockTransport`` handler that records requests and routes by path suffix."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> None:
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, responder in self.routes.items():
            if request.url.path.endswith(suffix):
                return responder(request)
        return httpx.Response(404, json={"status": "fail", "data": {"message": "unknown route"}})

    def calls(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_reading(
    source: str,
    station: str,
    distance: Optional[float],
    aqi: int = 42,
    point: Coordinate = BANGKOK,
) -> NormalizedReading:
    return NormalizedReading(
        source_name=source,
        station_id=station,
        display_name=station.title(),
        coordinates=point,
        distance_km=distance,
        air_quality_index=AirQualityIndex(us=aqi),
        observed_at=datetime(2024, 3, 1, 6, tzinfo=timezone.utc),
    )


class StubAdapter(AirQualityAdapter):
    """In-memory adapter for service and API tests."""

    description = "stub"

    def __init__(
        self,
        name: str,
        readings: Optional[List[NormalizedReading]] = None,
        error: Optional[Exception] = None,
        available: bool = True,
        browse: bool = False,
    ) -> None:
        super().__init__(api_key="k" if available else None, base_url="https://stub.test", cache=TTLCache())
        self.name = name
        self.readings = readings or []
        self.error = error
        self.browse = browse
        self.calls = 0
        # (city, region, country) lowercased -> reading
        self.cities: Dict[tuple, NormalizedReading] = {}
        self.regions: Dict[str, List[str]] = {}
        self.city_lists: Dict[tuple, List[str]] = {}
        self.name_calls: List[tuple] = []
        self.region_calls: List[str] = []
        self.city_list_calls: List[tuple] = []

    def capability(self) -> ProviderCapability:
        return ProviderCapability(
            name=self.name,
            description=self.description,
            supports_radius_search=True,
            supports_browse=self.browse,
            requires_api_key=True,
            is_available=self.is_available,
        )

    async def fetch_by_coordinate(self, point, radius_km):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [r for r in self.readings if r.distance_km is None or r.distance_km <= radius_km]

    async def fetch_by_name(self, city, region, country):
        self.name_calls.append((city, region, country))
        key = (city.lower(), (region or "").lower(), country.lower())
        if key in self.cities:
            return self.cities[key]
        raise NotFound("city_not_found", {"query": {"city": city, "state": region, "country": country}})

    async def list_regions(self, country):
        self.region_calls.append(country)
        if country.lower() not in self.regions:
            raise UpstreamUnavailable("no regions")
        return self.regions[country.lower()]

    async def list_cities(self, region, country):
        self.city_list_calls.append((region, country))
        key = (region.lower(), country.lower())
        if key not in self.city_lists:
            raise NotFound("no cities")
        return self.city_lists[key]

    async def list_countries(self):
        return sorted({c for (_, _, c) in self.cities})
