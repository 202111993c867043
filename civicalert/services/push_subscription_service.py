"""Push subscription registry"""

from typing import Iterable, List, Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, delete, and_
import logging
import uuid

from civicalert.core.config import settings
from civicalert.core.exceptions import UpstreamQueryError
from civicalert.models.push_notification import PushSubscription, NotificationPreference

logger = logging.getLogger(__name__)

class PushSubscriptionRegistry:
    """
    Lifecycle of per-device push endpoints

    A row is Active from subscribe until it is removed by an explicit
    unsubscribe or a permanent delivery failure. Removal is terminal;
    subscribing the same endpoint again creates a fresh row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def subscribe(
        self,
        user_id: str,
        endpoint: str,
        public_key: str,
        auth_secret: str
    ) -> PushSubscription:
        """Register or update a subscription for (user, endpoint)"""
        stmt = select(PushSubscription).where(
            and_(
                PushSubscription.user_id == user_id,
                PushSubscription.endpoint == endpoint
            )
        )
        result = await self.db.execute(stmt)
        subscription = result.scalar_one_or_none()

        if subscription:
            logger.info(f"Updating push subscription {subscription.id} for user {user_id}")
            subscription.p256dh = public_key
            subscription.auth = auth_secret
            subscription.updated_at = datetime.now(timezone.utc)
        else:
            subscription = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh=public_key,
                auth=auth_secret
            )
            self.db.add(subscription)
            logger.info(f"Creating push subscription for user {user_id}")

        preference = await self._get_or_create_preference(user_id)
        preference.notifications_enabled = True
        preference.push_notifications = True

        await self.db.commit()
        return subscription

    async def unsubscribe(self, user_id: str, endpoint: str) -> int:
        """
        Remove the user's subscription for an endpoint

        Returns the number of rows removed (0 when already gone).
        """
        result = await self.db.execute(
            delete(PushSubscription).where(
                and_(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint
                )
            )
        )
        removed = result.rowcount or 0

        if removed:
            logger.info(f"Removed {removed} push subscription(s) for user {user_id}")
        else:
            logger.info(f"No push subscription to remove for user {user_id}")

        # Account-wide side effect pending a product decision: one device
        # unsubscribing turns proximity alerts off for every device.
        if settings.UNSUBSCRIBE_DISABLES_PROXIMITY:
            preference = await self._get_or_create_preference(user_id)
            preference.proximity_notifications = False
            logger.info(f"Proximity notifications disabled for user {user_id} after unsubscribe")

        await self.db.commit()
        return removed

    async def list_by_user(self, user_id: str) -> List[PushSubscription]:
        """All subscriptions of one user"""
        result = await self.db.execute(
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[PushSubscription]:
        """Every subscription, for diagnostics"""
        result = await self.db.execute(
            select(PushSubscription).order_by(PushSubscription.created_at)
        )
        return list(result.scalars().all())

    async def list_for_users(self, user_ids: Iterable[str]) -> List[PushSubscription]:
        """Batch lookup used by the dispatcher"""
        user_ids = list(user_ids)
        if not user_ids:
            return []

        try:
            result = await self.db.execute(
                select(PushSubscription).where(PushSubscription.user_id.in_(user_ids))
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch push subscriptions for {len(user_ids)} users: {e}")
            raise UpstreamQueryError("Failed to fetch subscriptions")

        return list(result.scalars().all())

    async def remove_many(self, subscription_ids: Iterable[uuid.UUID]) -> int:
        """Delete subscriptions by id (self-healing after permanent failures)"""
        subscription_ids = list(subscription_ids)
        if not subscription_ids:
            return 0

        result = await self.db.execute(
            delete(PushSubscription).where(PushSubscription.id.in_(subscription_ids))
        )
        await self.db.commit()
        return result.rowcount or 0

    async def get_preference(self, user_id: str) -> Optional[NotificationPreference]:
        result = await self.db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_preference(self, user_id: str) -> NotificationPreference:
        preference = await self.get_preference(user_id)
        if preference is None:
            preference = NotificationPreference(
                user_id=user_id,
                notifications_enabled=True,
                push_notifications=True,
                proximity_notifications=True
            )
            self.db.add(preference)
        return preference
