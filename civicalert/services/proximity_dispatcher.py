"""
Proximity notification dispatcher

On a new report: find opted-in users within the radius, resolve their push
subscriptions, deliver concurrently with bounded parallelism, remove
subscriptions whose endpoint is gone and write one aggregate log entry.

Per-delivery failures never abort the call; they are collected in the
result's ``errors``. Loading the report, the locations or the subscriptions
is call-aborting. Repeated calls for the same report send again: callers are
expected to dispatch once per report.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
import asyncio
import logging
import time
import uuid

from civicalert.core.config import settings
from civicalert.core.exceptions import (
    DeliveryError,
    NotFoundError,
    TransientDeliveryError,
    UpstreamQueryError,
    ValidationError,
)
from civicalert.core.monitoring import (
    delivery_count,
    dispatch_count,
    dispatch_duration,
    subscriptions_removed,
)
from civicalert.models.experience import Experience
from civicalert.models.geofence import GeofenceRegion
from civicalert.models.push_notification import NotificationLog, PushSubscription
from civicalert.services.location_service import LocationService, TrackedLocation
from civicalert.services.notification_composer import NotificationComposer
from civicalert.services.push_subscription_service import PushSubscriptionRegistry
from civicalert.services.push_transport import PushTransport
from civicalert.utils.helpers import distance_meters

logger = logging.getLogger(__name__)

@dataclass
class NearbyUser:
    user_id: str
    distance_m: float

@dataclass
class DeliveryOutcome:
    subscription: PushSubscription
    error: Optional[DeliveryError] = None

    @property
    def delivered(self) -> bool:
        return self.error is None

@dataclass
class DispatchResult:
    """Aggregate outcome of one dispatch call"""

    notified: int = 0
    total_nearby_users: int = 0
    total_subscriptions: int = 0
    removed_subscriptions: int = 0
    errors: List[str] = field(default_factory=list)
    success: bool = True

    def to_response(self) -> Dict:
        response = {
            "success": self.success,
            "notified": self.notified,
            "totalNearbyUsers": self.total_nearby_users,
            "totalSubscriptions": self.total_subscriptions,
        }
        if self.errors:
            response["errors"] = self.errors
        return response

def find_nearby_users(
    latitude: float,
    longitude: float,
    tracked: Iterable[TrackedLocation],
    radius_meters: float
) -> List[NearbyUser]:
    """Opted-in users whose last location is within radius_meters (inclusive)"""
    nearby = []
    for location in tracked:
        if not location.opted_in:
            continue

        distance = distance_meters(latitude, longitude, location.latitude, location.longitude)
        if distance <= radius_meters:
            nearby.append(NearbyUser(user_id=location.user_id, distance_m=distance))
            logger.debug(f"Nearby user found: {location.user_id} ({distance / 1000:.2f}km away)")

    return nearby

class ProximityDispatcher:
    """Fan-out of proximity notifications for a newly reported issue"""

    def __init__(
        self,
        db: AsyncSession,
        transport: PushTransport,
        composer: Optional[NotificationComposer] = None,
        max_concurrency: Optional[int] = None,
        delivery_timeout: Optional[float] = None
    ):
        self.db = db
        self.transport = transport
        self.composer = composer or NotificationComposer()
        self.max_concurrency = max_concurrency or settings.DISPATCH_MAX_CONCURRENCY
        self.delivery_timeout = delivery_timeout or settings.DELIVERY_TIMEOUT_SECONDS
        self.registry = PushSubscriptionRegistry(db)
        self.locations = LocationService(db)

    async def dispatch(
        self,
        experience_id: uuid.UUID,
        radius_meters: Optional[float] = None,
        timeout: Optional[float] = None
    ) -> DispatchResult:
        """
        Notify every opted-in user near a report

        Args:
            experience_id: Report to announce
            radius_meters: Search radius, defaults to PROXIMITY_DEFAULT_RADIUS_METERS
            timeout: Optional bound for the whole fan-out; deliveries still in
                flight when it expires are cancelled and reported as errors

        Raises:
            NotFoundError: The report does not exist
            UpstreamQueryError: Locations or subscriptions could not be loaded
        """
        started = time.perf_counter()
        radius = radius_meters if radius_meters is not None else settings.PROXIMITY_DEFAULT_RADIUS_METERS
        dispatch_count.labels(type="proximity").inc()

        experience = await self._load_experience(experience_id)
        logger.info(
            f"Checking proximity notifications for experience {experience.id} "
            f"at ({experience.latitude}, {experience.longitude}), radius {radius}m"
        )

        tracked = await self.locations.load_tracked_locations()
        nearby = find_nearby_users(experience.latitude, experience.longitude, tracked, radius)
        result = DispatchResult(total_nearby_users=len(nearby))

        if not nearby:
            logger.info(f"No nearby users found within {radius}m of experience {experience.id}")
            await self._write_log("proximity", experience_id=experience.id, radius=radius, result=result)
            return result

        distances = {user.user_id: user.distance_m for user in nearby}
        subscriptions = await self.registry.list_for_users(distances.keys())
        result.total_subscriptions = len(subscriptions)
        logger.info(f"Found {len(subscriptions)} push subscriptions for {len(nearby)} nearby users")

        # One payload per recipient so the body quotes their own distance;
        # the tag is shared so a client collapses duplicates of this report
        payloads = {
            user_id: self.composer.encode(
                self.composer.build_proximity_payload(experience, distance / 1000)
            )
            for user_id, distance in distances.items()
        }
        deliveries = [(subscription, payloads[subscription.user_id]) for subscription in subscriptions]

        try:
            outcomes, dead = await self._fan_out(deliveries, timeout)
        finally:
            dispatch_duration.observe(time.perf_counter() - started)

        self._collect(outcomes, result)
        result.removed_subscriptions = await self._remove_dead(dead)
        await self._write_log(
            "proximity",
            experience_id=experience.id,
            radius=radius,
            result=result
        )

        logger.info(
            f"Proximity notifications sent: {result.notified}/{result.total_subscriptions} "
            f"for experience {experience.id}"
        )
        return result

    async def send_test(self, user_id: str, message: Optional[str] = None) -> DispatchResult:
        """Deliver the diagnostic payload to every device of one user"""
        dispatch_count.labels(type="test").inc()

        subscriptions = await self.registry.list_by_user(user_id)
        if not subscriptions:
            raise NotFoundError("No push subscriptions found for user")

        payload = self.composer.build_test_payload(message)
        return await self._deliver_payload("test", subscriptions, payload)

    async def send_message(
        self,
        title: str,
        body: str,
        user_id: Optional[str] = None,
        broadcast: bool = False
    ) -> DispatchResult:
        """
        Deliver a community update to one user's devices, or to every device

        Raises:
            ValidationError: Neither a user nor a broadcast was requested
        """
        if broadcast:
            logger.info("Broadcasting community update to all subscriptions")
            subscriptions = await self.registry.list_all()
        elif user_id:
            subscriptions = await self.registry.list_by_user(user_id)
        else:
            raise ValidationError("userId required for non-broadcast messages")

        notification_type = "broadcast" if broadcast else "direct"
        dispatch_count.labels(type=notification_type).inc()

        payload = self.composer.build_community_update(title, body)
        return await self._deliver_payload(notification_type, subscriptions, payload)

    async def send_geofence_alert(
        self,
        user_id: str,
        region: GeofenceRegion,
        distance_m: float
    ) -> DispatchResult:
        """Push the region-entry alert to every device of one user"""
        dispatch_count.labels(type="geofence").inc()

        subscriptions = await self.registry.list_by_user(user_id)
        payload = self.composer.build_geofence_alert(region, distance_m)
        return await self._deliver_payload(
            "geofence",
            subscriptions,
            payload,
            experience_id=region.experience_id
        )

    async def _deliver_payload(
        self,
        notification_type: str,
        subscriptions: Sequence[PushSubscription],
        payload: Dict,
        experience_id: Optional[uuid.UUID] = None
    ) -> DispatchResult:
        """Send one payload to a set of subscriptions, clean up and log"""
        encoded = self.composer.encode(payload)
        result = DispatchResult(total_subscriptions=len(subscriptions))
        result.total_nearby_users = len({s.user_id for s in subscriptions})

        outcomes, dead = await self._fan_out([(s, encoded) for s in subscriptions], None)
        self._collect(outcomes, result)
        result.removed_subscriptions = await self._remove_dead(dead)
        await self._write_log(notification_type, experience_id=experience_id, radius=None, result=result)

        return result

    async def _load_experience(self, experience_id: uuid.UUID) -> Experience:
        try:
            experience = await self.db.get(Experience, experience_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch experience {experience_id}: {e}")
            raise UpstreamQueryError("Failed to fetch experience")

        if not experience:
            logger.warning(f"Experience {experience_id} not found")
            raise NotFoundError("Experience not found")

        return experience

    async def _fan_out(
        self,
        deliveries: Sequence[Tuple[PushSubscription, str]],
        timeout: Optional[float]
    ) -> Tuple[List[DeliveryOutcome], List[PushSubscription]]:
        """
        Deliver every (subscription, payload) pair concurrently

        At most max_concurrency sends are in flight. Outcomes of finished
        deliveries are kept even when the overall timeout expires or the
        caller cancels.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        dead_lock = asyncio.Lock()
        dead: List[PushSubscription] = []

        async def deliver(subscription: PushSubscription, payload: str) -> DeliveryOutcome:
            async with semaphore:
                try:
                    await asyncio.wait_for(
                        self.transport.send(subscription, payload),
                        timeout=self.delivery_timeout
                    )
                except asyncio.TimeoutError:
                    error = TransientDeliveryError(
                        f"Delivery timed out after {self.delivery_timeout}s",
                        subscription_id=str(subscription.id),
                        user_id=subscription.user_id
                    )
                except DeliveryError as e:
                    error = e
                except Exception as e:
                    logger.exception(f"Unexpected push transport error for subscription {subscription.id}")
                    error = TransientDeliveryError(
                        str(e),
                        subscription_id=str(subscription.id),
                        user_id=subscription.user_id
                    )
                else:
                    delivery_count.labels(outcome="sent").inc()
                    logger.debug(f"Notification sent to user {subscription.user_id} (subscription {subscription.id})")
                    return DeliveryOutcome(subscription)

            if error.permanent:
                async with dead_lock:
                    dead.append(subscription)
                delivery_count.labels(outcome="gone").inc()
                logger.warning(
                    f"Subscription {subscription.id} of user {subscription.user_id} is gone "
                    f"(status {error.status_code}); scheduling removal"
                )
            else:
                delivery_count.labels(outcome="failed").inc()
                logger.error(
                    f"Failed to send notification to user {subscription.user_id} "
                    f"(subscription {subscription.id}): {error.message}"
                )
            return DeliveryOutcome(subscription, error)

        if not deliveries:
            return [], dead

        tasks = {
            asyncio.create_task(deliver(subscription, payload)): subscription
            for subscription, payload in deliveries
        }

        try:
            done, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning(f"Dispatch cancelled; {len(dead)} dead subscriptions still removed")
            await asyncio.shield(self._remove_dead(dead))
            raise

        outcomes = [task.result() for task in done]

        if pending:
            logger.warning(f"Dispatch deadline of {timeout}s exceeded with {len(pending)} deliveries in flight")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                subscription = tasks[task]
                delivery_count.labels(outcome="failed").inc()
                outcomes.append(DeliveryOutcome(
                    subscription,
                    TransientDeliveryError(
                        "Dispatch deadline exceeded",
                        subscription_id=str(subscription.id),
                        user_id=subscription.user_id
                    )
                ))

        return outcomes, dead

    @staticmethod
    def _collect(outcomes: Iterable[DeliveryOutcome], result: DispatchResult) -> None:
        for outcome in outcomes:
            if outcome.delivered:
                result.notified += 1
            else:
                result.errors.append(f"User {outcome.subscription.user_id}: {outcome.error.message}")

    async def _remove_dead(self, dead: List[PushSubscription]) -> int:
        if not dead:
            return 0

        try:
            removed = await self.registry.remove_many(s.id for s in dead)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to remove {len(dead)} dead subscriptions "
                f"({', '.join(str(s.id) for s in dead)}): {e}"
            )
            return 0

        subscriptions_removed.inc(removed)
        for subscription in dead:
            logger.info(f"Cleaned up invalid subscription {subscription.id} for user {subscription.user_id}")
        return removed

    async def _write_log(
        self,
        notification_type: str,
        experience_id: Optional[uuid.UUID],
        radius: Optional[float],
        result: DispatchResult
    ) -> None:
        self.db.add(NotificationLog(
            type=notification_type,
            experience_id=experience_id,
            recipients_count=result.notified,
            proximity_radius=radius,
            success_count=result.notified,
            failure_count=len(result.errors)
        ))
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to write {notification_type} dispatch log for experience {experience_id}: {e}")
