"""Geofence tracker client"""

from .api_client import CivicAlertClient
from .geofence_tracker import GeofenceTracker, Location, Region
from .storage import InMemoryKeyValueStore, JsonFileKeyValueStore

__all__ = [
    "CivicAlertClient",
    "GeofenceTracker",
    "Location",
    "Region",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
