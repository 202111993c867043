"""Geofencing endpoints: location ingestion, region catalogue and proximity alerts"""

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from civicalert.core.database import get_db
from civicalert.core.exceptions import NotFoundError
from civicalert.core.security import get_current_user
from civicalert.middleware.rate_limit import location_limit
from civicalert.services.geofencing_service import GeofencingService
from civicalert.services.location_service import LocationService
from civicalert.services.push_transport import PushTransport, get_push_transport
from .schemas import LocationUpdate, ProximityNotificationResponse, RegionCreate, RegionResponse

router = APIRouter()

@router.post("/location")
@location_limit
async def update_location(
    request: Request,
    response: Response,
    location: LocationUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Record the caller's current location"""
    service = LocationService(db)

    await service.update_user_location(
        user_id=current_user["id"],
        latitude=location.latitude,
        longitude=location.longitude,
        accuracy=location.accuracy,
        timestamp=location.timestamp
    )

    return {"success": True, "message": "Location updated successfully"}

@router.get("/regions", response_model=List[RegionResponse])
async def list_regions(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(5000, gt=0),
    db: AsyncSession = Depends(get_db)
):
    """Active regions, optionally limited to those near a point"""
    service = GeofencingService(db)

    if lat is not None and lng is not None:
        regions = await service.get_regions_near_location(lat, lng, radius)
    else:
        regions = await service.get_all_active_regions()

    return [region.to_region() for region in regions]

@router.post("/regions", response_model=RegionResponse)
async def create_region(
    body: RegionCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create an alert region around a report"""
    service = GeofencingService(db)

    region = await service.create_region(
        experience_id=body.experience_id,
        latitude=body.latitude,
        longitude=body.longitude,
        radius=body.radius,
        created_by=current_user["id"]
    )

    return region.to_region()

@router.delete("/regions/{region_id}")
async def delete_region(
    region_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate a region created by the caller"""
    try:
        parsed_id = uuid.UUID(region_id)
    except ValueError:
        raise NotFoundError("Geofence region not found")

    service = GeofencingService(db)
    await service.deactivate_region(parsed_id, current_user["id"])

    return {"success": True, "message": "Geofence region removed"}

@router.post("/check-proximity")
async def check_proximity(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    transport: PushTransport = Depends(get_push_transport)
):
    """Alert the caller about regions around their saved location"""
    service = GeofencingService(db)
    alerts = await service.check_proximity_and_notify(current_user["id"], transport)

    return {
        "success": True,
        "notifications": len(alerts),
        "message": f"Checked proximity, sent {len(alerts)} notifications"
    }

@router.get("/notifications", response_model=List[ProximityNotificationResponse])
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's proximity alert history, newest first"""
    service = GeofencingService(db)
    return await service.get_user_notifications(current_user["id"], limit=limit, offset=offset)
