"""User location store"""

from typing import List, NamedTuple, Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select
import logging

from civicalert.core.exceptions import UpstreamQueryError
from civicalert.models.geofence import UserLocation
from civicalert.models.push_notification import NotificationPreference

logger = logging.getLogger(__name__)

class TrackedLocation(NamedTuple):
    """A user's last location joined with their notification switches"""

    user_id: str
    latitude: float
    longitude: float
    notifications_enabled: bool
    proximity_notifications: bool

    @property
    def opted_in(self) -> bool:
        return bool(self.notifications_enabled and self.proximity_notifications)

class LocationService:
    """Overwrite-per-user location storage"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def update_user_location(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        timestamp: Optional[int] = None
    ) -> UserLocation:
        """
        Store the user's current location

        Concurrent reports from several devices race harmlessly: the last
        write wins and the next update corrects any staleness.
        """
        reported_at = (
            datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
            if timestamp is not None
            else datetime.now(timezone.utc)
        )

        result = await self.db.execute(
            select(UserLocation).where(UserLocation.user_id == user_id)
        )
        location = result.scalar_one_or_none()

        if location:
            location.latitude = latitude
            location.longitude = longitude
            location.accuracy = accuracy
            location.last_updated = reported_at
        else:
            location = UserLocation(
                user_id=user_id,
                latitude=latitude,
                longitude=longitude,
                accuracy=accuracy,
                last_updated=reported_at
            )
            self.db.add(location)

        await self.db.commit()
        logger.debug(f"Location updated for user {user_id}")
        return location

    async def get_user_location(self, user_id: str) -> Optional[UserLocation]:
        result = await self.db.execute(
            select(UserLocation).where(UserLocation.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def load_tracked_locations(self) -> List[TrackedLocation]:
        """
        Every known location with the owner's notification preferences

        Users without a settings row come back with both switches off.
        TODO: add a bounding-box (or geohash) pre-filter on latitude/longitude
        before this grows past a few thousand rows; it is a full scan today.
        """
        stmt = (
            select(
                UserLocation.user_id,
                UserLocation.latitude,
                UserLocation.longitude,
                NotificationPreference.notifications_enabled,
                NotificationPreference.proximity_notifications,
            )
            .outerjoin(
                NotificationPreference,
                NotificationPreference.user_id == UserLocation.user_id
            )
            .where(
                UserLocation.latitude.is_not(None),
                UserLocation.longitude.is_not(None)
            )
        )

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch user locations: {e}")
            raise UpstreamQueryError("Failed to fetch user locations")

        return [
            TrackedLocation(
                user_id=row.user_id,
                latitude=row.latitude,
                longitude=row.longitude,
                notifications_enabled=bool(row.notifications_enabled),
                proximity_notifications=bool(row.proximity_notifications),
            )
            for row in result.all()
        ]
