"""Push notification models"""

from sqlalchemy import Column, String, Text, Boolean, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
import uuid

from .base import Base, TimestampedModel, UUIDModel, utcnow

class PushSubscription(Base, UUIDModel, TimestampedModel):
    """Web Push endpoint and encryption keys for one user device"""

    __tablename__ = "push_subscriptions"

    user_id = Column(String(255), nullable=False, index=True)
    endpoint = Column(Text, nullable=False, index=True)
    p256dh = Column(Text, nullable=False)  # client public key
    auth = Column(Text, nullable=False)  # auth secret

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="push_subscriptions_user_id_endpoint_key"),
    )

    def to_subscription_info(self) -> dict:
        """Shape expected by the Web Push transport"""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }

class NotificationPreference(Base, UUIDModel, TimestampedModel):
    """Per-user notification switches (subset of user settings)"""

    __tablename__ = "user_settings"

    user_id = Column(String(255), unique=True, nullable=False, index=True)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    push_notifications = Column(Boolean, default=True, nullable=False)
    proximity_notifications = Column(Boolean, default=True, nullable=False)

class NotificationLog(Base):
    """Aggregate record of one dispatch call"""

    __tablename__ = "notification_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(50), nullable=False, index=True)  # proximity, test, direct, broadcast, geofence
    experience_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("experiences.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    recipients_count = Column(Integer, default=0, nullable=False)
    proximity_radius = Column(Float)  # meters
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
