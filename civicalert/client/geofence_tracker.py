"""
Client-side geofence tracker

Consumes a stream of device locations, raises a local alert when the device
is inside a registered region (at most once per region per cooldown window)
and forwards every location to the server in the background.

Forwarding is best effort: a failed upload is logged, counted in
``dropped_uploads`` and superseded by the next location.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Set,
)
import asyncio
import logging
import time

from civicalert.client.api_client import CivicAlertClient
from civicalert.client.storage import InMemoryKeyValueStore, KeyValueStore
from civicalert.core.config import settings
from civicalert.services.notification_composer import NotificationComposer
from civicalert.utils.helpers import distance_meters

logger = logging.getLogger(__name__)

COOLDOWN_STORE_KEY = "geofence_cooldowns"

@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: Optional[int] = None  # ms since epoch

@dataclass(frozen=True)
class Region:
    """Circular region around a reported issue"""

    id: str
    experience_id: str
    latitude: float
    longitude: float
    radius: float  # meters
    title: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Region":
        """Build from the server's region catalogue representation"""
        return cls(
            id=str(data["id"]),
            experience_id=str(data.get("experienceId") or data.get("experience_id")),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            radius=float(data["radius"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
        )

class LocationSource(Protocol):
    """Platform geolocation"""

    async def request_permission(self) -> bool:
        ...

    def watch(self) -> AsyncIterator[Location]:
        ...

AlertSink = Callable[[Dict[str, Any]], Awaitable[None]]

class GeofenceTracker:
    """Matches device locations against registered regions"""

    def __init__(
        self,
        location_source: LocationSource,
        client: Optional[CivicAlertClient] = None,
        alert_sink: Optional[AlertSink] = None,
        cooldown_store: Optional[KeyValueStore] = None,
        cooldown_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        composer: Optional[NotificationComposer] = None
    ):
        self.location_source = location_source
        self.client = client
        self.alert_sink = alert_sink
        self.cooldown_store = cooldown_store or InMemoryKeyValueStore()
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.GEOFENCE_COOLDOWN_SECONDS
        )
        self.clock = clock
        self.composer = composer or NotificationComposer()

        self.dropped_uploads = 0
        self._regions: Mapping[str, Region] = MappingProxyType({})
        self._cooldowns: Dict[str, float] = self._load_cooldowns()
        self._last_location: Optional[Location] = None
        self._permission_granted = False
        self._tracking = False
        self._watch_task: Optional[asyncio.Task] = None
        self._uploads: Set[asyncio.Task] = set()

    # Accessors
    @property
    def last_location(self) -> Optional[Location]:
        return self._last_location

    @property
    def is_tracking(self) -> bool:
        return self._tracking

    @property
    def regions(self) -> List[Region]:
        return list(self._regions.values())

    @property
    def cooldowns(self) -> Dict[str, float]:
        return dict(self._cooldowns)

    # Tracking lifecycle
    async def request_permission(self) -> bool:
        """Ask the platform for location access"""
        try:
            granted = await self.location_source.request_permission()
        except Exception as e:
            logger.error(f"Location permission request failed: {e}")
            granted = False

        self._permission_granted = bool(granted)
        if not self._permission_granted:
            logger.warning("Location permission denied")
        return self._permission_granted

    async def start_tracking(self) -> bool:
        """Begin watching locations; a no-op when already tracking"""
        if self._tracking:
            return True

        if not self._permission_granted and not await self.request_permission():
            return False

        self._tracking = True
        self._watch_task = asyncio.create_task(self._watch())
        logger.info("Location tracking started")
        return True

    async def stop_tracking(self) -> None:
        """Cancel the location watch; safe to call repeatedly"""
        task, self._watch_task = self._watch_task, None
        self._tracking = False

        if task is None:
            return

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Location tracking stopped")

    async def _watch(self) -> None:
        try:
            async for location in self.location_source.watch():
                await self.on_location_update(location)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Location watch failed; tracking stopped")
        finally:
            self._tracking = False

    async def on_location_update(self, location: Location) -> List[Dict[str, Any]]:
        """
        Handle one location fix

        Returns the alerts raised for this fix. The upstream forward is
        started in the background and never delays or fails this call.
        """
        self._last_location = location
        regions = self._regions
        now = self.clock()
        alerts = []

        for region in regions.values():
            distance = distance_meters(
                location.latitude, location.longitude,
                region.latitude, region.longitude
            )
            if distance > region.radius or not self._cooldown_elapsed(region.id, now):
                continue

            alert = self.composer.build_geofence_alert(region, distance)
            self._cooldowns[region.id] = now
            alerts.append(alert)
            logger.info(f"Entered geofence {region.id} ({int(round(distance))}m from issue)")
            await self._raise_alert(alert)

        if alerts:
            self._save_cooldowns()

        self._forward(location)
        return alerts

    def _cooldown_elapsed(self, region_id: str, now: float) -> bool:
        last = self._cooldowns.get(region_id)
        return last is None or now - last > self.cooldown_seconds

    async def _raise_alert(self, alert: Dict[str, Any]) -> None:
        if self.alert_sink is None:
            return
        try:
            await self.alert_sink(alert)
        except Exception as e:
            logger.error(f"Failed to show geofence alert {alert.get('tag')}: {e}")

    # Upstream forwarding
    def _forward(self, location: Location) -> None:
        if self.client is None:
            return

        task = asyncio.create_task(self._upload(location))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)

    async def _upload(self, location: Location) -> None:
        try:
            await self.client.forward_location(
                location.latitude,
                location.longitude,
                accuracy=location.accuracy,
                timestamp=location.timestamp
            )
        except Exception as e:
            self.dropped_uploads += 1
            logger.warning(
                f"Dropped location upload ({self.dropped_uploads} so far): {e}"
            )

    async def drain_uploads(self) -> None:
        """Wait for in-flight uploads, e.g. before shutdown"""
        if self._uploads:
            await asyncio.gather(*list(self._uploads), return_exceptions=True)

    # Region set; every mutation swaps in a new read-only mapping
    def add_region(self, region: Region) -> None:
        regions = dict(self._regions)
        regions[region.id] = region
        self._regions = MappingProxyType(regions)

    def remove_region(self, region_id: str) -> bool:
        if region_id not in self._regions:
            return False
        regions = dict(self._regions)
        del regions[region_id]
        self._regions = MappingProxyType(regions)
        return True

    def load_regions(self, regions: Iterable[Region]) -> None:
        self._regions = MappingProxyType({region.id: region for region in regions})

    async def refresh_regions(self) -> int:
        """Replace the region set with the server catalogue"""
        if self.client is None:
            logger.warning("No API client configured; regions not refreshed")
            return 0

        location = self._last_location
        if location is not None:
            data = await self.client.fetch_regions(location.latitude, location.longitude)
        else:
            data = await self.client.fetch_regions()

        self.load_regions(Region.from_dict(item) for item in data)
        logger.info(f"Loaded {len(self._regions)} geofence regions")
        return len(self._regions)

    # Cooldown persistence
    def _load_cooldowns(self) -> Dict[str, float]:
        stored = self.cooldown_store.get(COOLDOWN_STORE_KEY) or {}
        cooldowns: Dict[str, float] = {}
        for region_id, stamp in stored.items():
            try:
                cooldowns[str(region_id)] = float(stamp)
            except (TypeError, ValueError):
                logger.warning(f"Discarding invalid cooldown entry for region {region_id}")
        return cooldowns

    def _save_cooldowns(self) -> None:
        try:
            self.cooldown_store.set(COOLDOWN_STORE_KEY, dict(self._cooldowns))
        except OSError as e:
            logger.error(f"Failed to persist geofence cooldowns: {e}")
