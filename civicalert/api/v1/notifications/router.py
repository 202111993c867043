"""Push subscription, proximity and community update endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict
import logging
import uuid

from civicalert.core.database import get_db
from civicalert.core.exceptions import NotFoundError
from civicalert.core.security import get_current_user, require_admin_token
from civicalert.services.proximity_dispatcher import ProximityDispatcher
from civicalert.services.push_subscription_service import PushSubscriptionRegistry
from civicalert.services.push_transport import PushTransport, get_push_transport
from .schemas import (
    ProximityDispatchRequest,
    SendNotificationRequest,
    SubscribeRequest,
    TestNotificationRequest,
    UnsubscribeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

def _subscription_summary(subscription) -> Dict[str, Any]:
    return {
        "id": str(subscription.id),
        "userId": subscription.user_id,
        "endpoint": subscription.endpoint,
        "createdAt": subscription.created_at.isoformat() if subscription.created_at else None,
    }

@router.post("/subscribe")
async def subscribe(
    request: SubscribeRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Register this device's push endpoint"""
    registry = PushSubscriptionRegistry(db)

    subscription = await registry.subscribe(
        user_id=current_user["id"],
        endpoint=request.endpoint,
        public_key=request.keys.p256dh,
        auth_secret=request.keys.auth
    )

    return {
        "success": True,
        "message": "Subscription saved successfully",
        "subscriptionId": str(subscription.id)
    }

@router.post("/unsubscribe")
async def unsubscribe(
    request: UnsubscribeRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove this device's push endpoint"""
    registry = PushSubscriptionRegistry(db)
    removed = await registry.unsubscribe(current_user["id"], request.endpoint)

    return {
        "success": True,
        "message": "Unsubscribed successfully",
        "removed": removed
    }

@router.get("/subscriptions")
async def list_my_subscriptions(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's registered devices"""
    registry = PushSubscriptionRegistry(db)
    subscriptions = await registry.list_by_user(current_user["id"])

    return {
        "subscriptions": [_subscription_summary(s) for s in subscriptions],
        "total": len(subscriptions)
    }

@router.get("/admin/subscriptions", dependencies=[Depends(require_admin_token)])
async def list_all_subscriptions(db: AsyncSession = Depends(get_db)):
    """Every registered device (admin only)"""
    registry = PushSubscriptionRegistry(db)
    subscriptions = await registry.list_all()

    return {
        "subscriptions": [_subscription_summary(s) for s in subscriptions],
        "total": len(subscriptions)
    }

@router.post("/proximity", dependencies=[Depends(require_admin_token)])
async def dispatch_proximity(
    request: ProximityDispatchRequest,
    db: AsyncSession = Depends(get_db),
    transport: PushTransport = Depends(get_push_transport)
):
    """Notify users near a newly reported issue (admin only)"""
    try:
        experience_id = uuid.UUID(request.experience_id)
    except ValueError:
        raise NotFoundError("Experience not found")

    dispatcher = ProximityDispatcher(db, transport)
    result = await dispatcher.dispatch(experience_id, radius_meters=request.radius_meters)

    return result.to_response()

@router.post("/test", dependencies=[Depends(require_admin_token)])
async def send_test_notification(
    request: TestNotificationRequest,
    db: AsyncSession = Depends(get_db),
    transport: PushTransport = Depends(get_push_transport)
):
    """Send the diagnostic payload to one user's devices (admin only)"""
    dispatcher = ProximityDispatcher(db, transport)
    result = await dispatcher.send_test(request.user_id, request.message)

    logger.info(f"Test notification sent to {result.notified}/{result.total_subscriptions} devices of user {request.user_id}")

    response = {
        "success": True,
        "sent": result.notified,
        "totalSubscriptions": result.total_subscriptions,
    }
    if result.errors:
        response["errors"] = result.errors
    return response

@router.post("/send", dependencies=[Depends(require_admin_token)])
async def send_notification(
    request: SendNotificationRequest,
    db: AsyncSession = Depends(get_db),
    transport: PushTransport = Depends(get_push_transport)
):
    """Send a community update to one user or to every device (admin only)"""
    dispatcher = ProximityDispatcher(db, transport)
    result = await dispatcher.send_message(
        title=request.title,
        body=request.body,
        user_id=request.user_id,
        broadcast=request.broadcast
    )

    logger.info(f"Community update sent to {result.notified}/{result.total_subscriptions} devices")

    response = {"ok": True, "sent": result.notified}
    if result.errors:
        response["errors"] = result.errors
    return response
