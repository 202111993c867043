"""HTTP client for the CivicAlert API, used by the geofence tracker"""

from typing import Any, Dict, List, Optional
import httpx
import logging

logger = logging.getLogger(__name__)

class CivicAlertClient:
    """Thin async wrapper around the geofence endpoints"""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport
        )

    async def forward_location(
        self,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        timestamp: Optional[int] = None
    ) -> Dict[str, Any]:
        """Send the current location; raises httpx errors on failure"""
        payload = {
            "latitude": latitude,
            "longitude": longitude,
            "accuracy": accuracy,
            "timestamp": timestamp,
        }
        async with self._client() as client:
            response = await client.post(
                "/api/v1/geofence/location",
                json=payload,
                headers=self._headers()
            )
            response.raise_for_status()
            return response.json()

    async def fetch_regions(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """Active geofence regions, optionally around a point"""
        params = {}
        if latitude is not None and longitude is not None:
            params = {"lat": latitude, "lng": longitude}
            if radius is not None:
                params["radius"] = radius

        async with self._client() as client:
            response = await client.get("/api/v1/geofence/regions", params=params)
            response.raise_for_status()
            return response.json()
