"""
GeofenceTracker unit tests
"""
import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from civicalert.client.geofence_tracker import (
    COOLDOWN_STORE_KEY,
    GeofenceTracker,
    Location,
    Region,
)
from civicalert.client.storage import InMemoryKeyValueStore, JsonFileKeyValueStore

REGION = Region(
    id="region-1",
    experience_id="exp-1",
    latitude=18.0179,
    longitude=-76.8099,
    radius=500,
    title="Broken streetlight",
)
INSIDE = Location(latitude=18.02, longitude=-76.81, accuracy=10.0, timestamp=1700000000000)
OUTSIDE = Location(latitude=19.5, longitude=-75.0)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class QueueLocationSource:
    """Location source fed by the test"""

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.queue: asyncio.Queue = asyncio.Queue()

    async def request_permission(self) -> bool:
        return self.granted

    async def watch(self):
        while True:
            yield await self.queue.get()


def make_tracker(**kwargs) -> GeofenceTracker:
    kwargs.setdefault("location_source", QueueLocationSource())
    kwargs.setdefault("cooldown_seconds", 3600)
    return GeofenceTracker(**kwargs)


@pytest.mark.asyncio
class TestLocationUpdates:

    async def test_alert_inside_region(self):
        sink = AsyncMock()
        tracker = make_tracker(alert_sink=sink)
        tracker.add_region(REGION)

        alerts = await tracker.on_location_update(INSIDE)

        assert len(alerts) == 1
        assert alerts[0]["tag"] == "geofence-region-1"
        sink.assert_awaited_once_with(alerts[0])
        assert tracker.last_location == INSIDE

    async def test_no_alert_outside_region(self):
        tracker = make_tracker()
        tracker.add_region(REGION)

        assert await tracker.on_location_update(OUTSIDE) == []

    async def test_cooldown_suppresses_repeat_alert(self):
        clock = FakeClock()
        tracker = make_tracker(clock=clock)
        tracker.add_region(REGION)

        first = await tracker.on_location_update(INSIDE)
        clock.now += 1800
        second = await tracker.on_location_update(INSIDE)
        clock.now += 1801
        third = await tracker.on_location_update(INSIDE)

        assert len(first) == 1
        assert second == []
        assert len(third) == 1

    async def test_cooldown_boundary_is_exclusive(self):
        clock = FakeClock()
        tracker = make_tracker(clock=clock)
        tracker.add_region(REGION)

        await tracker.on_location_update(INSIDE)
        clock.now += 3600

        assert await tracker.on_location_update(INSIDE) == []

    async def test_cooldowns_persist_through_store(self, tmp_path):
        path = tmp_path / "state.json"
        clock = FakeClock()
        tracker = make_tracker(clock=clock, cooldown_store=JsonFileKeyValueStore(path))
        tracker.add_region(REGION)
        await tracker.on_location_update(INSIDE)

        restarted = make_tracker(clock=clock, cooldown_store=JsonFileKeyValueStore(path))
        restarted.add_region(REGION)

        assert restarted.cooldowns == {"region-1": clock.now}
        assert await restarted.on_location_update(INSIDE) == []

    async def test_invalid_stored_cooldowns_are_discarded(self):
        store = InMemoryKeyValueStore({COOLDOWN_STORE_KEY: {"region-1": "soon", "region-2": 12.5}})

        tracker = make_tracker(cooldown_store=store)

        assert tracker.cooldowns == {"region-2": 12.5}

    async def test_alert_sink_failure_does_not_stop_processing(self):
        sink = AsyncMock(side_effect=RuntimeError("notification permission revoked"))
        tracker = make_tracker(alert_sink=sink)
        tracker.add_region(REGION)

        alerts = await tracker.on_location_update(INSIDE)

        assert len(alerts) == 1


@pytest.mark.asyncio
class TestUpstreamForwarding:

    async def test_location_forwarded(self):
        client = AsyncMock()
        tracker = make_tracker(client=client)

        await tracker.on_location_update(INSIDE)
        await tracker.drain_uploads()

        client.forward_location.assert_awaited_once_with(
            18.02, -76.81, accuracy=10.0, timestamp=1700000000000
        )
        assert tracker.dropped_uploads == 0

    async def test_failed_forward_is_counted_not_raised(self):
        client = AsyncMock()
        client.forward_location.side_effect = httpx.ConnectError("offline")
        tracker = make_tracker(client=client)
        tracker.add_region(REGION)

        alerts = await tracker.on_location_update(INSIDE)
        await tracker.drain_uploads()

        assert len(alerts) == 1
        assert tracker.dropped_uploads == 1

        await tracker.on_location_update(OUTSIDE)
        await tracker.drain_uploads()
        assert tracker.dropped_uploads == 2


class TestRegions:

    def test_add_replaces_same_id(self):
        tracker = make_tracker()
        tracker.add_region(REGION)
        tracker.add_region(Region(id="region-1", experience_id="exp-1", latitude=0, longitude=0, radius=10))

        assert len(tracker.regions) == 1
        assert tracker.regions[0].radius == 10

    def test_remove(self):
        tracker = make_tracker()
        tracker.add_region(REGION)

        assert tracker.remove_region("region-1") is True
        assert tracker.remove_region("region-1") is False
        assert tracker.regions == []

    def test_load_replaces_all(self):
        tracker = make_tracker()
        tracker.add_region(REGION)
        other = Region(id="region-2", experience_id="exp-2", latitude=1, longitude=1, radius=100)

        tracker.load_regions([other])

        assert [r.id for r in tracker.regions] == ["region-2"]

    def test_from_catalogue_dict(self):
        region = Region.from_dict({
            "id": "region-3",
            "experienceId": "exp-3",
            "latitude": 18.0,
            "longitude": -76.8,
            "radius": 250,
            "title": "Fallen tree",
            "description": None,
        })

        assert region.experience_id == "exp-3"
        assert region.radius == 250.0
        assert region.description == ""

    @pytest.mark.asyncio
    async def test_refresh_from_client(self):
        client = AsyncMock()
        client.fetch_regions.return_value = [{
            "id": "region-3",
            "experienceId": "exp-3",
            "latitude": 18.0,
            "longitude": -76.8,
            "radius": 250,
            "title": "Fallen tree",
        }]
        tracker = make_tracker(client=client)

        assert await tracker.refresh_regions() == 1
        assert tracker.regions[0].id == "region-3"


@pytest.mark.asyncio
class TestTrackingLifecycle:

    async def test_start_and_stop(self):
        source = QueueLocationSource()
        tracker = make_tracker(location_source=source)
        tracker.add_region(REGION)
        sink = AsyncMock()
        tracker.alert_sink = sink

        assert await tracker.start_tracking() is True
        assert await tracker.start_tracking() is True
        assert tracker.is_tracking

        await source.queue.put(INSIDE)
        for _ in range(10):
            if sink.await_count:
                break
            await asyncio.sleep(0.01)
        assert sink.await_count == 1

        await tracker.stop_tracking()
        await tracker.stop_tracking()
        assert not tracker.is_tracking

    async def test_permission_denied(self):
        tracker = make_tracker(location_source=QueueLocationSource(granted=False))

        assert await tracker.start_tracking() is False
        assert not tracker.is_tracking
