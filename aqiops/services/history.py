"""Periodic reading collection and time-series queries.

``HistoryService`` snapshots a city's current reading on a fixed
interval into a ``ReadingStore`` and answers history, statistics and
hourly-average queries over what has been stored.  Collection runs as a
single cancellable ``asyncio`` task.
"""

from __future__ import annotations

import asyncio
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from aqiops.adapters.base import AirQualityAdapter
from aqiops.errors import AirQualityError, InvalidInput
from aqiops.middleware.logging import log_error, log_info
from aqiops.models.history import HistoryReading, HistoryStatistics, HourlyAverage

HISTORY_LIMIT = 1000


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class InMemoryReadingStore:
    """Thread-safe in-process reading store."""

    def __init__(self) -> None:
        self._readings: Dict[str, List[HistoryReading]] = defaultdict(list)
        self._lock = threading.Lock()

    def add(self, reading: HistoryReading) -> None:
        with self._lock:
            self._readings[reading.stationId].append(reading)

    def find(
        self,
        station_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HistoryReading]:
        """Readings for a station inside ``[start, end]``, oldest first."""
        with self._lock:
            rows = list(self._readings.get(station_id, ()))
        if start is not None:
            rows = [r for r in rows if _aware(r.timestamp) >= _aware(start)]
        if end is not None:
            rows = [r for r in rows if _aware(r.timestamp) <= _aware(end)]
        return sorted(rows, key=lambda r: _aware(r.timestamp))

    def delete_before(self, cutoff: datetime) -> int:
        deleted = 0
        with self._lock:
            for station_id, rows in list(self._readings.items()):
                kept = [r for r in rows if _aware(r.timestamp) >= _aware(cutoff)]
                deleted += len(rows) - len(kept)
                if kept:
                    self._readings[station_id] = kept
                else:
                    del self._readings[station_id]
        return deleted


class HistoryService:
    """Collect readings for one location at a time and query the stored series."""

    def __init__(
        self,
        adapter: AirQualityAdapter,
        store: Optional[InMemoryReadingStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.adapter = adapter
        self.store = store if store is not None else InMemoryReadingStore()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------
    @property
    def is_collecting(self) -> bool:
        return self._task is not None and not self._task.done()

    async def collect_once(
        self, city: str, region: Optional[str], country: str
    ) -> Optional[HistoryReading]:
        """Fetch and store the current reading; failures are logged, not raised."""
        try:
            data = await self.adapter.fetch_by_name(city, region, country)
        except AirQualityError as e:
            log_error("history_collect_failed", city=city, region=region, error=e.message)
            return None

        reading = HistoryReading(
            stationId=data.station_id,
            timestamp=self._clock(),
            aqi=data.air_quality_index.us,
            pollutants=data.pollutants,
            weather=data.weather,
        )
        self.store.add(reading)
        log_info("history_reading_saved", city=city, station_id=data.station_id, aqi=reading.aqi)
        return reading

    async def start_collection(
        self,
        city: str,
        region: Optional[str],
        country: str,
        interval_minutes: float = 60,
    ) -> bool:
        """Collect now, then every ``interval_minutes``.

        Returns ``False`` without doing anything when a collection is
        already running.
        """
        if interval_minutes <= 0:
            raise InvalidInput("intervalMinutes must be positive", {"intervalMinutes": interval_minutes})
        if self.is_collecting:
            log_info("history_collection_already_running")
            return False

        # The task is registered before the first await so a concurrent
        # start sees it; the initial collection runs inside the task.
        first_done = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(city, region, country, interval_minutes * 60, first_done)
        )
        # Cancelled before its first step, the task never reaches the event.
        self._task.add_done_callback(lambda _task: first_done.set())
        log_info("history_collection_started", city=city, interval_minutes=interval_minutes)
        await first_done.wait()
        return True

    async def stop_collection(self) -> bool:
        """Cancel the running collection task; ``False`` if none was running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log_info("history_collection_stopped")
        return True

    async def _run(
        self,
        city: str,
        region: Optional[str],
        country: str,
        interval_seconds: float,
        first_done: asyncio.Event,
    ) -> None:
        await self.collect_once(city, region, country)
        first_done.set()
        while True:
            await asyncio.sleep(interval_seconds)
            await self.collect_once(city, region, country)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_history(
        self,
        station_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HistoryReading]:
        """Newest-first readings, capped at ``HISTORY_LIMIT``."""
        rows = self.store.find(station_id, start, end)
        return list(reversed(rows))[:HISTORY_LIMIT]

    def get_statistics(self, station_id: str, days: int = 7) -> Optional[HistoryStatistics]:
        rows = self.store.find(station_id, self._clock() - timedelta(days=days))
        if not rows:
            return None
        values = [r.aqi for r in rows]
        return HistoryStatistics(
            count=len(rows),
            average=int(sum(values) / len(values) + 0.5),
            min=min(values),
            max=max(values),
            current=rows[-1].aqi,
            startDate=rows[0].timestamp,
            endDate=rows[-1].timestamp,
        )

    def get_hourly_averages(self, station_id: str, hours: int = 24) -> List[HourlyAverage]:
        """Per-UTC-hour average AQI, oldest hour first."""
        rows = self.store.find(station_id, self._clock() - timedelta(hours=hours))
        buckets: Dict[datetime, List[HistoryReading]] = {}
        for r in rows:
            hour = _aware(r.timestamp).astimezone(timezone.utc).replace(
                minute=0, second=0, microsecond=0
            )
            buckets.setdefault(hour, []).append(r)
        return [
            HourlyAverage(
                timestamp=group[0].timestamp,
                aqi=int(sum(r.aqi for r in group) / len(group) + 0.5),
                count=len(group),
            )
            for _, group in sorted(buckets.items())
        ]

    def clean_old_data(self, days_to_keep: int = 30) -> int:
        """Drop readings older than ``days_to_keep`` days; returns how many."""
        deleted = self.store.delete_before(self._clock() - timedelta(days=days_to_keep))
        log_info("history_cleaned", deleted=deleted, days_to_keep=days_to_keep)
        return deleted


__all__ = ["HistoryService", "InMemoryReadingStore", "HISTORY_LIMIT"]
