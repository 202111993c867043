"""Geofencing request and response schemas"""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from uuid import UUID

class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, gt=0)
    timestamp: Optional[int] = Field(None, description="Milliseconds since epoch")

class RegionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    experience_id: UUID = Field(
        ...,
        validation_alias=AliasChoices("experienceId", "experience_id")
    )
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius: int = Field(500, gt=0, description="Meters")

class RegionResponse(BaseModel):
    id: str
    experienceId: str
    latitude: float
    longitude: float
    radius: int
    title: str
    description: str = ""

class ProximityNotificationResponse(BaseModel):
    id: str
    regionId: str
    experienceId: str
    distance: int
    createdAt: Optional[str] = None
    title: str
    description: str = ""
