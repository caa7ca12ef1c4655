"""Pydantic models for stored readings and their statistics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .reading import Pollutants, Weather


class HistoryReading(BaseModel):
    """A reading snapshot persisted by the collector."""

    stationId: str
    timestamp: datetime
    aqi: int = Field(ge=0)
    pollutants: Pollutants = Field(default_factory=Pollutants)
    weather: Weather = Field(default_factory=Weather)


class HistoryStatistics(BaseModel):
    """Summary of a station's readings over a time window."""

    count: int
    average: int
    min: int
    max: int
    current: int
    startDate: datetime
    endDate: datetime


class HourlyAverage(BaseModel):
    """Average AQI over one UTC hour."""

    timestamp: datetime
    aqi: int
    count: int
