"""
Notification payload builder

Every payload is a small JSON document consumed by the client's service
worker. Payloads only ever carry ids and URLs; the encoded form must fit the
Web Push ceiling (4KB by default).
"""

from typing import Any, Dict, Optional, Protocol
import json
import time
import logging

from civicalert.core.config import settings
from civicalert.core.exceptions import PayloadTooLargeError

logger = logging.getLogger(__name__)

ELLIPSIS = "…"

class ReportLike(Protocol):
    id: Any
    title: str
    latitude: float
    longitude: float
    address: str

class RegionLike(Protocol):
    id: Any
    experience_id: Any
    title: str
    latitude: float
    longitude: float

def _now_ms() -> int:
    return int(time.time() * 1000)

class NotificationComposer:
    """Builds wire payloads for each notification type"""

    def __init__(
        self,
        icon_url: Optional[str] = None,
        max_payload_bytes: Optional[int] = None
    ):
        self.icon_url = icon_url or settings.PUSH_ICON_URL
        self.max_payload_bytes = max_payload_bytes or settings.PUSH_MAX_PAYLOAD_BYTES

    def build_proximity_payload(self, report: ReportLike, distance_km: float) -> Dict[str, Any]:
        """Payload announcing a newly reported issue near the recipient"""
        timestamp = _now_ms()
        experience_id = str(report.id)
        location = f" in {report.address}" if report.address else ""

        return {
            "title": "🚨 New Issue Nearby",
            "body": f"\"{report.title}\" reported {distance_km:.1f}km from you{location}",
            "icon": self.icon_url,
            "badge": self.icon_url,
            # Same tag for every recipient so clients collapse repeats
            "tag": f"proximity-{experience_id}",
            "requireInteraction": True,
            "timestamp": timestamp,
            "actions": [
                {"action": "view", "title": "👀 View Issue"},
                {"action": "navigate", "title": "🧭 Get Directions"},
            ],
            "data": {
                "type": "proximity_notification",
                "experienceId": experience_id,
                "url": f"/shared/experience/{experience_id}",
                "latitude": report.latitude,
                "longitude": report.longitude,
                "timestamp": timestamp,
            },
        }

    def build_test_payload(self, message: Optional[str] = None) -> Dict[str, Any]:
        """Diagnostic payload"""
        return {
            "title": "🧪 Test Notification",
            "body": message or "This is a test notification from CivicAlert!",
            "icon": self.icon_url,
            "badge": self.icon_url,
            "tag": "test-notification",
            "requireInteraction": True,
            "actions": [{"action": "view", "title": "👀 View App"}],
            "data": {
                "type": "test",
                "url": "/home",
                "timestamp": _now_ms(),
            },
        }

    def build_community_update(self, title: str, body: str) -> Dict[str, Any]:
        """Admin-authored update sent to one user or broadcast to everyone"""
        timestamp = _now_ms()

        return {
            "title": f"🔥 {title}",
            "body": f"{body} • Community Power",
            "icon": self.icon_url,
            "badge": self.icon_url,
            "requireInteraction": False,
            "timestamp": timestamp,
            "actions": [
                {"action": "view", "title": "🚀 Take Action"},
                {"action": "share", "title": "📢 Share"},
            ],
            "data": {
                "type": "community_update",
                "url": "/home",
                "timestamp": timestamp,
            },
        }

    def build_geofence_alert(self, region: RegionLike, distance_m: float) -> Dict[str, Any]:
        """Region-entry alert, raised locally by the tracker or pushed by the server"""
        rounded = int(round(distance_m))
        experience_id = str(region.experience_id)

        return {
            "title": f"Nearby Issue: {region.title}",
            "body": f"You're {rounded}m away from a reported issue",
            "icon": self.icon_url,
            "badge": self.icon_url,
            "tag": f"geofence-{region.id}",
            "actions": [
                {"action": "view", "title": "👀 View Issue"},
                {"action": "directions", "title": "🗺️ Get Directions"},
            ],
            "data": {
                "experienceId": experience_id,
                "regionId": str(region.id),
                "distance": rounded,
                "url": f"/experience/{experience_id}",
                "latitude": region.latitude,
                "longitude": region.longitude,
            },
        }

    def encode(self, payload: Dict[str, Any]) -> str:
        """
        Serialize a payload for the push transport

        An oversized body is shortened; anything still over the limit is
        rejected with PayloadTooLargeError.
        """
        encoded = self._dumps(payload)
        size = len(encoded.encode("utf-8"))
        if size <= self.max_payload_bytes:
            return encoded

        body = payload.get("body") or ""
        overflow = size - self.max_payload_bytes
        # Trim a little extra for the ellipsis and multi-byte characters
        keep = len(body) - overflow - len(ELLIPSIS.encode("utf-8"))
        if keep > 0:
            trimmed = dict(payload, body=body[:keep] + ELLIPSIS)
            encoded = self._dumps(trimmed)
            size = len(encoded.encode("utf-8"))
            if size <= self.max_payload_bytes:
                logger.warning(f"Notification body truncated to fit {self.max_payload_bytes} bytes")
                return encoded

        raise PayloadTooLargeError(size, self.max_payload_bytes)

    @staticmethod
    def _dumps(payload: Dict[str, Any]) -> str:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
