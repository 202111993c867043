"""
Web Push delivery via pywebpush

Classifies every delivery attempt as success, transient failure or
permanent failure. pywebpush is synchronous (requests), so each send runs in
a worker thread bounded by its own timeout.
"""

from typing import Optional, Protocol
import asyncio
import logging

from pywebpush import webpush, WebPushException
import requests

from civicalert.core.config import settings
from civicalert.core.exceptions import PermanentDeliveryError, TransientDeliveryError
from civicalert.models.push_notification import PushSubscription

logger = logging.getLogger(__name__)

# Push services answer 404/410 once a subscription has expired or been revoked
GONE_STATUS_CODES = (404, 410)

class PushTransport(Protocol):
    """Anything that can deliver an encoded payload to one subscription"""

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        ...

class WebPushTransport:
    """Delivers notifications with VAPID-signed Web Push requests"""

    def __init__(
        self,
        vapid_private_key: Optional[str] = None,
        vapid_subject: Optional[str] = None,
        ttl: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self.vapid_private_key = vapid_private_key or settings.VAPID_PRIVATE_KEY
        self.vapid_subject = vapid_subject or settings.VAPID_CLAIMS_SUBJECT
        self.ttl = ttl if ttl is not None else settings.PUSH_TTL_SECONDS
        self.timeout = timeout or settings.DELIVERY_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.vapid_private_key)

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        """Send one payload; raises a DeliveryError subclass on failure"""
        subscription_id = str(subscription.id)
        user_id = subscription.user_id

        if not self.configured:
            raise TransientDeliveryError(
                "Push notifications not configured",
                subscription_id=subscription_id,
                user_id=user_id
            )

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_blocking, subscription.to_subscription_info(), payload),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise TransientDeliveryError(
                f"Delivery timed out after {self.timeout}s",
                subscription_id=subscription_id,
                user_id=user_id
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            error_class = PermanentDeliveryError if status_code in GONE_STATUS_CODES else TransientDeliveryError
            raise error_class(
                str(e),
                subscription_id=subscription_id,
                user_id=user_id,
                status_code=status_code
            )
        except requests.RequestException as e:
            raise TransientDeliveryError(
                f"Network error: {e}",
                subscription_id=subscription_id,
                user_id=user_id
            )

    def _send_blocking(self, subscription_info: dict, payload: str) -> None:
        # webpush() mutates the claims dict, so build a fresh one per call
        webpush(
            subscription_info=subscription_info,
            data=payload,
            vapid_private_key=self.vapid_private_key,
            vapid_claims={"sub": self.vapid_subject},
            ttl=self.ttl,
            timeout=self.timeout
        )

def get_push_transport() -> PushTransport:
    """FastAPI dependency; overridden in tests"""
    return WebPushTransport()
