"""Service exports."""

from .aggregator import Aggregator
from .history import HistoryService, InMemoryReadingStore
from .resolver import CityResolver

__all__ = ["Aggregator", "CityResolver", "HistoryService", "InMemoryReadingStore"]
