"""Adapter exports."""

from .base import AirQualityAdapter
from .iqair import IQAirAdapter
from .purpleair import PurpleAirAdapter

__all__ = [
    "AirQualityAdapter",
    "IQAirAdapter",
    "PurpleAirAdapter",
]
