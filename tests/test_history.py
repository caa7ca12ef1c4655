import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from aqiops.errors import InvalidInput
from aqiops.models import HistoryReading
from aqiops.services import HistoryService, InMemoryReadingStore

from tests.helpers import StubAdapter, make_reading

NOW = datetime(2024, 3, 8, 12, 30, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _service(clock=None):
    adapter = StubAdapter("iqair", browse=True)
    adapter.cities[("bangkok", "bangkok", "thailand")] = make_reading("iqair", "bangkok-bangkok-thailand", None, aqi=87)
    return HistoryService(adapter, clock=clock or Clock())


def _seed(service, station, *points):
    for offset, aqi in points:
        service.store.add(HistoryReading(stationId=station, timestamp=NOW - offset, aqi=aqi))


def test_collect_once_stores_a_snapshot():
    service = _service()

    reading = asyncio.run(service.collect_once("Bangkok", "Bangkok", "Thailand"))

    assert reading.stationId == "bangkok-bangkok-thailand"
    assert reading.aqi == 87
    assert reading.timestamp == NOW
    assert service.get_history("bangkok-bangkok-thailand") == [reading]


def test_collect_once_failure_is_logged_not_raised():
    service = _service()

    assert asyncio.run(service.collect_once("Atlantis", None, "Greece")) is None
    assert service.get_history("atlantis-greece") == []


def test_history_is_newest_first_and_bounded():
    service = _service()
    _seed(service, "s", (timedelta(hours=3), 10), (timedelta(hours=1), 30), (timedelta(hours=2), 20))

    assert [r.aqi for r in service.get_history("s")] == [30, 20, 10]
    window = service.get_history("s", start=NOW - timedelta(hours=2, minutes=30), end=NOW - timedelta(minutes=90))
    assert [r.aqi for r in window] == [20]


def test_statistics_over_window():
    service = _service()
    _seed(
        service,
        "s",
        (timedelta(days=10), 500),
        (timedelta(days=3), 40),
        (timedelta(days=2), 61),
        (timedelta(hours=1), 50),
    )

    stats = service.get_statistics("s", days=7)

    assert stats.count == 3
    assert stats.average == 50
    assert stats.min == 40
    assert stats.max == 61
    assert stats.current == 50
    assert stats.startDate == NOW - timedelta(days=3)
    assert stats.endDate == NOW - timedelta(hours=1)


def test_statistics_without_data_is_none():
    assert _service().get_statistics("nothing") is None


def test_hourly_averages_bucket_by_hour():
    service = _service()
    _seed(
        service,
        "s",
        (timedelta(hours=30), 999),
        (timedelta(hours=2, minutes=20), 10),
        (timedelta(hours=2, minutes=10), 21),
        (timedelta(minutes=10), 70),
    )

    hours = service.get_hourly_averages("s", hours=24)

    assert [(h.aqi, h.count) for h in hours] == [(16, 2), (70, 1)]
    assert hours[0].timestamp == NOW - timedelta(hours=2, minutes=20)


def test_clean_old_data():
    service = _service()
    _seed(service, "s", (timedelta(days=40), 1), (timedelta(days=31), 2), (timedelta(days=5), 3))
    _seed(service, "t", (timedelta(days=90), 4))

    assert service.clean_old_data(days_to_keep=30) == 3
    assert [r.aqi for r in service.get_history("s")] == [3]
    assert service.get_history("t") == []


def test_store_find_is_oldest_first():
    store = InMemoryReadingStore()
    store.add(HistoryReading(stationId="s", timestamp=NOW, aqi=2))
    store.add(HistoryReading(stationId="s", timestamp=NOW - timedelta(hours=1), aqi=1))

    assert [r.aqi for r in store.find("s")] == [1, 2]
    assert store.find("missing") == []


def test_start_and_stop_collection():
    service = _service()

    async def scenario():
        started = await service.start_collection("Bangkok", "Bangkok", "Thailand", interval_minutes=60)
        again = await service.start_collection("Bangkok", "Bangkok", "Thailand")
        running = service.is_collecting
        stopped = await service.stop_collection()
        stopped_again = await service.stop_collection()
        return started, again, running, stopped, stopped_again

    assert asyncio.run(scenario()) == (True, False, True, True, False)
    assert not service.is_collecting
    # the immediate first collection
    assert len(service.get_history("bangkok-bangkok-thailand")) == 1


def test_collection_repeats_on_interval():
    service = _service()

    async def scenario():
        await service.start_collection("Bangkok", "Bangkok", "Thailand", interval_minutes=0.0001)
        await asyncio.sleep(0.1)
        await service.stop_collection()

    asyncio.run(scenario())

    assert len(service.get_history("bangkok-bangkok-thailand")) >= 2


@pytest.mark.parametrize("interval", [0, -1])
def test_non_positive_interval_is_rejected(interval):
    service = _service()

    with pytest.raises(InvalidInput):
        asyncio.run(service.start_collection("Bangkok", None, "Thailand", interval_minutes=interval))
    assert not service.is_collecting


class SlowStub(StubAdapter):
    async def fetch_by_name(self, city, region, country):
        await asyncio.sleep(0.01)
        return await super().fetch_by_name(city, region, country)


def test_concurrent_starts_leave_one_stoppable_task():
    adapter = SlowStub("iqair", browse=True)
    adapter.cities[("bangkok", "bangkok", "thailand")] = make_reading("iqair", "bkk", None)
    service = HistoryService(adapter, clock=Clock())

    async def scenario():
        results = await asyncio.gather(
            service.start_collection("Bangkok", "Bangkok", "Thailand"),
            service.start_collection("Bangkok", "Bangkok", "Thailand"),
        )
        await service.stop_collection()
        leftover = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        return results, leftover

    results, leftover = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert leftover == []
    assert len(adapter.name_calls) == 1


def test_stop_during_first_collection_releases_start():
    adapter = SlowStub("iqair", browse=True)
    adapter.cities[("bangkok", "bangkok", "thailand")] = make_reading("iqair", "bkk", None)
    service = HistoryService(adapter, clock=Clock())

    async def scenario():
        start = asyncio.ensure_future(service.start_collection("Bangkok", "Bangkok", "Thailand"))
        await asyncio.sleep(0)
        stopped = await service.stop_collection()
        return await asyncio.wait_for(start, 1), stopped

    assert asyncio.run(scenario()) == (True, True)
    assert not service.is_collecting
