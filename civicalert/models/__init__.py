"""Models package initialization"""

from .base import Base
from .experience import Experience
from .geofence import UserLocation, GeofenceRegion, ProximityNotification
from .push_notification import PushSubscription, NotificationPreference, NotificationLog

# Export all models
__all__ = [
    "Base",
    "Experience",
    "UserLocation",
    "GeofenceRegion",
    "ProximityNotification",
    "PushSubscription",
    "NotificationPreference",
    "NotificationLog",
]
