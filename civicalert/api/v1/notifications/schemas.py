"""Notification request schemas"""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

class SubscriptionKeys(BaseModel):
    """Browser key names and the alternative camelCase names are both accepted"""

    model_config = ConfigDict(populate_by_name=True)

    p256dh: str = Field(..., min_length=1, validation_alias=AliasChoices("p256dh", "publicKey"))
    auth: str = Field(..., min_length=1, validation_alias=AliasChoices("auth", "authSecret"))

class SubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys

class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)

class ProximityDispatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    experience_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("experienceId", "experience_id")
    )
    radius_meters: Optional[float] = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("radiusMeters", "radius_meters")
    )

class TestNotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., min_length=1, validation_alias=AliasChoices("userId", "user_id"))
    message: Optional[str] = Field(None, max_length=500)

class SendNotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "user_id"))
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=1000)
    broadcast: bool = False
