"""
pytest configuration and shared fixtures
"""
import asyncio
import json
import os
from typing import AsyncGenerator, Dict, List, Optional, Tuple

# Settings are read at import time; configure them before importing the app
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["DATABASE_URL"] = "sqlite:///./civicalert-test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from civicalert.core.exceptions import PermanentDeliveryError, TransientDeliveryError
from civicalert.core.security import SecurityUtils
from civicalert.models import (
    Base,
    Experience,
    NotificationPreference,
    PushSubscription,
    UserLocation,
)

ADMIN_TOKEN = "test-admin-token"


def pytest_configure(config):
    """pytest configuration"""
    config.addinivalue_line(
        "markers", "integration: tests that exercise the HTTP app end to end"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'civicalert.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Row factories
# =============================================================================


@pytest.fixture
def make_experience(db):
    async def _make(
        latitude: float = 18.0179,
        longitude: float = -76.8099,
        title: str = "Broken streetlight",
        address: str = "Kingston",
    ) -> Experience:
        experience = Experience(
            title=title,
            description="Reported by a resident",
            latitude=latitude,
            longitude=longitude,
            address=address,
            reported_by="reporter",
        )
        db.add(experience)
        await db.commit()
        return experience

    return _make


@pytest.fixture
def make_user(db):
    """Location plus notification preferences for one user"""

    async def _make(
        user_id: str,
        latitude: float,
        longitude: float,
        notifications_enabled: bool = True,
        proximity_notifications: bool = True,
    ) -> UserLocation:
        location = UserLocation(user_id=user_id, latitude=latitude, longitude=longitude)
        db.add(location)
        db.add(NotificationPreference(
            user_id=user_id,
            notifications_enabled=notifications_enabled,
            push_notifications=True,
            proximity_notifications=proximity_notifications,
        ))
        await db.commit()
        return location

    return _make


@pytest.fixture
def make_subscription(db):
    async def _make(user_id: str, endpoint: str) -> PushSubscription:
        subscription = PushSubscription(
            user_id=user_id,
            endpoint=endpoint,
            p256dh="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
            auth="tBHItJI5svbpez7KI4CCXg",
        )
        db.add(subscription)
        await db.commit()
        return subscription

    return _make


# =============================================================================
# Push transport double
# =============================================================================


class FakeTransport:
    """
    Records deliveries instead of calling a push service

    ``outcomes`` maps an endpoint to "gone", "error" or "hang".
    """

    def __init__(self, outcomes: Optional[Dict[str, str]] = None, delay: float = 0.0):
        self.outcomes = outcomes or {}
        self.delay = delay
        self.sent: List[Tuple[str, dict]] = []
        self.attempted: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        self.attempted.append(subscription.endpoint)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)

            outcome = self.outcomes.get(subscription.endpoint)
            if outcome == "gone":
                raise PermanentDeliveryError(
                    "Push subscription has unsubscribed or expired.",
                    subscription_id=str(subscription.id),
                    user_id=subscription.user_id,
                    status_code=410,
                )
            if outcome == "error":
                raise TransientDeliveryError(
                    "Push service returned 500",
                    subscription_id=str(subscription.id),
                    user_id=subscription.user_id,
                    status_code=500,
                )
            if outcome == "hang":
                await asyncio.sleep(3600)

            self.sent.append((subscription.endpoint, json.loads(payload)))
        finally:
            self.in_flight -= 1


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


# =============================================================================
# Auth helpers
# =============================================================================


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user-a") -> Dict[str, str]:
        token = SecurityUtils.create_access_token({"sub": user_id, "email": f"{user_id}@example.com"})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"x-admin-token": ADMIN_TOKEN}
