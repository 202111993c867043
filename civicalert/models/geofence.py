"""Geofencing models"""

from sqlalchemy import Column, String, Text, Float, Integer, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel, utcnow

class UserLocation(Base, UUIDModel):
    """Last reported location of a user, one row per user"""

    __tablename__ = "user_locations"

    user_id = Column(String(255), unique=True, nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float)
    address = Column(Text)
    last_updated = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        Index("idx_user_locations_coordinates", "latitude", "longitude"),
    )

class GeofenceRegion(Base, UUIDModel, TimestampedModel):
    """Circular alert region around a reported issue"""

    __tablename__ = "geofence_regions"

    experience_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("experiences.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius = Column(Integer, nullable=False)  # meters
    active = Column(Boolean, default=True, nullable=False, index=True)
    created_by = Column(String(255), nullable=False)

    # Relationships
    experience = relationship("Experience", lazy="joined")

    @property
    def title(self) -> str:
        return self.experience.title if self.experience else "Unknown Issue"

    @property
    def description(self) -> str:
        return (self.experience.description if self.experience else None) or ""

    def to_region(self) -> dict:
        """Catalogue representation served to trackers"""
        return {
            "id": str(self.id),
            "experienceId": str(self.experience_id),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius": self.radius,
            "title": self.title,
            "description": self.description,
        }

class ProximityNotification(Base, UUIDModel):
    """One server-side alert sent to a user for entering a region"""

    __tablename__ = "proximity_notifications"

    user_id = Column(String(255), nullable=False, index=True)
    region_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("geofence_regions.id", ondelete="CASCADE"),
        nullable=False
    )
    experience_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("experiences.id", ondelete="CASCADE"),
        nullable=False
    )
    distance = Column(Integer, nullable=False)  # meters when notified
    notified = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_proximity_notifications_user_region", "user_id", "region_id", "created_at"),
    )
