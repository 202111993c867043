"""
LocationService and GeofencingService unit tests
"""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from civicalert.core.exceptions import NotFoundError, ValidationError
from civicalert.models import ProximityNotification
from civicalert.models.base import utcnow
from civicalert.services.geofencing_service import GeofencingService
from civicalert.services.location_service import LocationService


@pytest.mark.asyncio
class TestLocationService:

    async def test_update_overwrites_per_user(self, db):
        service = LocationService(db)

        await service.update_user_location("user-a", 18.0, -76.8, accuracy=20.0)
        await service.update_user_location("user-a", 18.02, -76.81, timestamp=1700000000000)

        location = await service.get_user_location("user-a")
        assert (location.latitude, location.longitude) == (18.02, -76.81)
        assert location.accuracy is None
        assert int(location.last_updated.timestamp()) == 1700000000
        assert len(await service.load_tracked_locations()) == 1

    async def test_users_without_settings_are_not_opted_in(self, db, make_user):
        service = LocationService(db)
        await make_user("user-a", 18.02, -76.81)
        await service.update_user_location("user-b", 18.02, -76.81)

        tracked = {t.user_id: t for t in await service.load_tracked_locations()}

        assert tracked["user-a"].opted_in is True
        assert tracked["user-b"].opted_in is False


@pytest.mark.asyncio
class TestGeofencingService:

    async def test_create_and_find_nearby(self, db, make_experience):
        experience = await make_experience()
        service = GeofencingService(db)

        region = await service.create_region(experience.id, 18.0179, -76.8099, 500, "user-a")

        assert region.to_region()["title"] == "Broken streetlight"
        assert [r.id for r in await service.get_regions_near_location(18.02, -76.81, 1000)] == [region.id]
        assert await service.get_regions_near_location(19.5, -75.0, 1000) == []

    async def test_radius_out_of_range(self, db, make_experience):
        experience = await make_experience()

        with pytest.raises(ValidationError):
            await GeofencingService(db).create_region(experience.id, 18.0, -76.8, 20000, "user-a")

    async def test_unknown_experience(self, db):
        with pytest.raises(NotFoundError):
            await GeofencingService(db).create_region(uuid.uuid4(), 18.0, -76.8, 500, "user-a")

    async def test_only_creator_can_deactivate(self, db, make_experience):
        experience = await make_experience()
        service = GeofencingService(db)
        region = await service.create_region(experience.id, 18.0, -76.8, 500, "user-a")

        with pytest.raises(NotFoundError):
            await service.deactivate_region(region.id, "user-b")

        await service.deactivate_region(region.id, "user-a")
        assert await service.get_all_active_regions() == []

    async def test_region_across_antimeridian(self, db, make_experience):
        experience = await make_experience(0.0, -179.99)
        service = GeofencingService(db)
        region = await service.create_region(experience.id, 0.0, -179.99, 500, "user-a")

        nearby = await service.get_regions_near_location(0.0, 179.99, 5000)

        assert [r.id for r in nearby] == [region.id]


@pytest.mark.asyncio
class TestProximityCheck:

    async def test_alerts_once_per_cooldown(self, db, transport, make_experience, make_user, make_subscription):
        experience = await make_experience()
        service = GeofencingService(db)
        region = await service.create_region(experience.id, 18.0179, -76.8099, 500, "reporter")
        await make_user("user-b", 18.02, -76.81)
        await make_subscription("user-b", "https://push.example/b")

        alerts = await service.check_proximity_and_notify("user-b", transport)

        assert len(alerts) == 1
        assert alerts[0]["regionId"] == str(region.id)
        assert alerts[0]["sent"] == 1
        assert 200 < alerts[0]["distance"] < 300
        _, payload = transport.sent[0]
        assert payload["tag"] == f"geofence-{region.id}"
        assert payload["title"] == "Nearby Issue: Broken streetlight"

        assert await service.check_proximity_and_notify("user-b", transport) == []
        assert transport.attempted == ["https://push.example/b"]

    async def test_alerts_again_after_cooldown(self, db, transport, make_experience, make_user, make_subscription):
        experience = await make_experience()
        service = GeofencingService(db)
        await service.create_region(experience.id, 18.0179, -76.8099, 500, "reporter")
        await make_user("user-b", 18.02, -76.81)
        await make_subscription("user-b", "https://push.example/b")

        await service.check_proximity_and_notify("user-b", transport)
        await db.execute(
            update(ProximityNotification).values(created_at=utcnow() - timedelta(hours=2))
        )
        await db.commit()

        alerts = await service.check_proximity_and_notify("user-b", transport)

        assert len(alerts) == 1
        assert len(transport.attempted) == 2

    async def test_outside_region_radius(self, db, transport, make_experience, make_user):
        experience = await make_experience()
        service = GeofencingService(db)
        await service.create_region(experience.id, 18.0179, -76.8099, 500, "reporter")
        # About 1.3km away: inside the search area, outside the region
        await make_user("user-b", 18.03, -76.81)

        assert await service.check_proximity_and_notify("user-b", transport) == []

    async def test_user_without_location(self, db, transport):
        assert await GeofencingService(db).check_proximity_and_notify("nobody", transport) == []

    async def test_alert_recorded_without_devices(self, db, transport, make_experience, make_user):
        experience = await make_experience()
        service = GeofencingService(db)
        await service.create_region(experience.id, 18.0179, -76.8099, 500, "reporter")
        await make_user("user-b", 18.02, -76.81)

        alerts = await service.check_proximity_and_notify("user-b", transport)

        assert alerts[0]["sent"] == 0
        assert len(await service.get_user_notifications("user-b")) == 1


@pytest.mark.asyncio
class TestNotificationHistory:

    async def test_newest_first_with_pagination(self, db, make_experience):
        experience = await make_experience()
        service = GeofencingService(db)
        region = await service.create_region(experience.id, 18.0179, -76.8099, 500, "reporter")
        now = utcnow()
        for hours_ago, distance in ((3, 300), (2, 200), (1, 100)):
            db.add(ProximityNotification(
                user_id="user-b",
                region_id=region.id,
                experience_id=experience.id,
                distance=distance,
                created_at=now - timedelta(hours=hours_ago)
            ))
        db.add(ProximityNotification(
            user_id="user-c",
            region_id=region.id,
            experience_id=experience.id,
            distance=50,
            created_at=now
        ))
        await db.commit()

        first_page = await service.get_user_notifications("user-b", limit=2)
        second_page = await service.get_user_notifications("user-b", limit=2, offset=2)

        assert [n["distance"] for n in first_page] == [100, 200]
        assert [n["distance"] for n in second_page] == [300]
        assert first_page[0]["title"] == "Broken streetlight"
        assert first_page[0]["description"] == "Reported by a resident"
        assert first_page[0]["experienceId"] == str(experience.id)
