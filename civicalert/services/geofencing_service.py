"""Geofence region catalogue and server-side proximity alerts"""

from typing import Any, Dict, List
from datetime import datetime, timedelta, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
import logging
import uuid

from civicalert.core.config import settings
from civicalert.core.exceptions import NotFoundError, ValidationError
from civicalert.models.experience import Experience
from civicalert.models.geofence import GeofenceRegion, ProximityNotification, UserLocation
from civicalert.services.proximity_dispatcher import ProximityDispatcher
from civicalert.services.push_transport import PushTransport
from civicalert.utils.helpers import bounding_box, distance_meters, longitude_ranges

logger = logging.getLogger(__name__)

# Regions considered by a server-side proximity check
PROXIMITY_CHECK_RADIUS_METERS = 5000

class GeofencingService:
    """Reads and maintains the regions that trackers match against"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_all_active_regions(self) -> List[GeofenceRegion]:
        """Every active region"""
        result = await self.db.execute(
            select(GeofenceRegion).where(GeofenceRegion.active == True)
        )
        return list(result.scalars().unique().all())

    async def get_regions_near_location(
        self,
        latitude: float,
        longitude: float,
        radius_meters: float = 5000
    ) -> List[GeofenceRegion]:
        """Active regions whose centre lies within radius_meters of a point"""
        min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_meters)
        # Two ranges when the box crosses the antimeridian
        longitude_filter = or_(*[
            and_(GeofenceRegion.longitude >= low, GeofenceRegion.longitude <= high)
            for low, high in longitude_ranges(min_lon, max_lon)
        ])

        # Rough bounding box filter for performance
        result = await self.db.execute(
            select(GeofenceRegion).where(
                and_(
                    GeofenceRegion.active == True,
                    GeofenceRegion.latitude >= min_lat,
                    GeofenceRegion.latitude <= max_lat,
                    longitude_filter
                )
            )
        )
        candidates = result.scalars().unique().all()

        # Filter by exact distance
        return [
            region for region in candidates
            if distance_meters(latitude, longitude, region.latitude, region.longitude) <= radius_meters
        ]

    async def create_region(
        self,
        experience_id: uuid.UUID,
        latitude: float,
        longitude: float,
        radius: int,
        created_by: str
    ) -> GeofenceRegion:
        """Create the alert region for a report"""
        if radius <= 0 or radius > settings.GEOFENCE_MAX_RADIUS_METERS:
            raise ValidationError(
                f"Radius must be between 1 and {settings.GEOFENCE_MAX_RADIUS_METERS} meters"
            )

        experience = await self.db.get(Experience, experience_id)
        if not experience:
            raise NotFoundError("Experience not found")

        region = GeofenceRegion(
            experience_id=experience_id,
            latitude=latitude,
            longitude=longitude,
            radius=radius,
            active=True,
            created_by=created_by
        )
        region.experience = experience
        self.db.add(region)
        await self.db.commit()

        logger.info(f"Geofence region {region.id} created for experience {experience_id}")
        return region

    async def deactivate_region(self, region_id: uuid.UUID, user_id: str) -> None:
        """Soft delete; only the creator may remove a region"""
        result = await self.db.execute(
            select(GeofenceRegion).where(
                and_(
                    GeofenceRegion.id == region_id,
                    GeofenceRegion.created_by == user_id,
                    GeofenceRegion.active == True
                )
            )
        )
        region = result.scalars().unique().one_or_none()

        if not region:
            raise NotFoundError("Geofence region not found")

        region.active = False
        await self.db.commit()
        logger.info(f"Geofence region {region_id} deactivated by user {user_id}")

    async def check_proximity_and_notify(
        self,
        user_id: str,
        transport: PushTransport
    ) -> List[Dict[str, Any]]:
        """
        Alert a user about every region their saved location falls inside

        Each (user, region) pair is alerted at most once per
        GEOFENCE_COOLDOWN_SECONDS. Every alert is recorded, including those
        that reached no device.

        Returns:
            One summary per alert sent
        """
        result = await self.db.execute(
            select(UserLocation).where(UserLocation.user_id == user_id)
        )
        location = result.scalar_one_or_none()
        if not location:
            return []

        regions = await self.get_regions_near_location(
            location.latitude,
            location.longitude,
            PROXIMITY_CHECK_RADIUS_METERS
        )

        dispatcher = ProximityDispatcher(self.db, transport)
        alerts = []

        for region in regions:
            distance = distance_meters(location.latitude, location.longitude, region.latitude, region.longitude)
            if distance > region.radius:
                continue

            if await self._recently_notified(user_id, region.id):
                logger.debug(f"User {user_id} already alerted about region {region.id} within cooldown")
                continue

            delivery = await dispatcher.send_geofence_alert(user_id, region, distance)
            rounded = int(round(distance))

            self.db.add(ProximityNotification(
                user_id=user_id,
                region_id=region.id,
                experience_id=region.experience_id,
                distance=rounded,
                notified=True
            ))
            await self.db.commit()

            alerts.append({
                "userId": user_id,
                "regionId": str(region.id),
                "distance": rounded,
                "sent": delivery.notified,
            })
            logger.info(f"Proximity alert for region {region.id} sent to {delivery.notified} devices of user {user_id}")

        return alerts

    async def get_user_notifications(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """A user's proximity alert history, newest first"""
        result = await self.db.execute(
            select(ProximityNotification, Experience.title, Experience.description)
            .join(Experience, ProximityNotification.experience_id == Experience.id)
            .where(ProximityNotification.user_id == user_id)
            .order_by(ProximityNotification.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        return [
            {
                "id": str(notification.id),
                "regionId": str(notification.region_id),
                "experienceId": str(notification.experience_id),
                "distance": notification.distance,
                "createdAt": notification.created_at.isoformat() if notification.created_at else None,
                "title": title,
                "description": description or "",
            }
            for notification, title, description in result.all()
        ]

    async def _recently_notified(self, user_id: str, region_id: uuid.UUID) -> bool:
        since = datetime.now(timezone.utc) - timedelta(seconds=settings.GEOFENCE_COOLDOWN_SECONDS)
        result = await self.db.execute(
            select(ProximityNotification.id).where(
                and_(
                    ProximityNotification.user_id == user_id,
                    ProximityNotification.region_id == region_id,
                    ProximityNotification.created_at > since
                )
            ).limit(1)
        )
        return result.first() is not None
