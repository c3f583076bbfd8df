"""
Centralized Test Configuration.

Each test gets its own SQLite file database so that concurrent sessions
use separate connections and really contend for the write lock.
"""

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event

from backend.app.main import app
from backend.app.core.dependencies import build_services
from backend.app.db.session import Base, create_engine, create_session_factory
from backend.app.models.driver_profile import DriverProfile
from backend.app.models.enums import UserRole
from backend.app.models.package import Package
from backend.app.models.package_enums import PackageSize, PackageStatus
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.models.user import User
from backend.app.models.wallet import Wallet
from backend.app.services.notification_service import NotificationDispatcher


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.published = []
        self._closed = False

    async def ping(self):
        return not self._closed

    async def publish(self, channel, message):
        if self._closed:
            raise ConnectionError("Redis connection closed")
        self.published.append((channel, message))
        return 1

    async def aclose(self):
        self._closed = True


class RecordingSink:
    """Notification sink that remembers every event it receives."""

    name = "recording"

    def __init__(self):
        self.events = []

    async def send(self, event):
        self.events.append(event)

    def of_type(self, event_name):
        return [e for e in self.events if e.event == event_name]


class MarketplaceFactory:
    """Creates committed test rows through the session factory."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = 0

    async def _add(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(self, role=UserRole.CUSTOMER, identity_verified=True, is_active=True):
        self._seq += 1
        return await self._add(User(
            email=f"{role.value.lower()}{self._seq}@example.com",
            full_name=f"Test {role.value.title()} {self._seq}",
            role=role,
            identity_verified=identity_verified,
            is_active=is_active,
        ))

    async def customer(self):
        return await self.user(UserRole.CUSTOMER)

    async def driver(self, rating=4.5, total_deliveries=100, identity_verified=True, with_profile=True):
        user = await self.user(UserRole.DRIVER, identity_verified=identity_verified)
        if with_profile:
            await self._add(DriverProfile(
                user_id=user.id,
                license_plate=f"TST-{user.id:04d}",
                vehicle_type="van",
                rating=rating,
                total_deliveries=total_deliveries,
            ))
        return user

    async def admin(self):
        return await self.user(UserRole.ADMIN)

    async def package(self, customer, size=PackageSize.SMALL, price_offered=50.0, weight_kg=None,
                      status=PackageStatus.PENDING, pickup=(40.7128, -74.0060),
                      delivery=(40.7306, -73.9866), created_at=None):
        return await self._add(Package(
            customer_id=customer.id,
            description="Test package",
            pickup_lat=pickup[0],
            pickup_lng=pickup[1],
            delivery_lat=delivery[0],
            delivery_lng=delivery[1],
            size=size,
            weight_kg=weight_kg,
            price_offered=price_offered,
            status=status,
            created_at=created_at or datetime.utcnow(),
        ))

    async def trip(self, driver, capacity=PackageSize.MEDIUM, departure_time=None,
                   status=TripStatus.SCHEDULED, start=(40.7128, -74.0060), end=(40.7306, -73.9866)):
        return await self._add(Trip(
            driver_id=driver.id,
            start_lat=start[0],
            start_lng=start[1],
            end_lat=end[0],
            end_lng=end[1],
            departure_time=departure_time or datetime.utcnow() + timedelta(hours=3),
            available_capacity=capacity,
            status=status,
        ))

    async def wallet(self, user, available_balance=100.0, reserved_balance=0.0):
        return await self._add(Wallet(
            user_id=user.id,
            available_balance=available_balance,
            reserved_balance=reserved_balance,
        ))


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}",
        connect_args={"timeout": 30},
    )

    # Event handler to enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def factory(session_factory):
    return MarketplaceFactory(session_factory)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
async def notifier(recording_sink):
    dispatcher = NotificationDispatcher([recording_sink])
    await dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def services(session_factory, notifier):
    return build_services(session_factory, notifier)


@pytest.fixture
def matching_engine(services):
    return services.matching


@pytest.fixture
def bid_ledger(services):
    return services.bids


@pytest.fixture
def reservations(services):
    return services.reservations


@pytest.fixture
async def client(session_factory, services):
    """Async client for testing. The lifespan does not run under ASGITransport."""
    app.state.session_factory = session_factory
    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    del app.state.services
    del app.state.session_factory


@pytest.fixture
def mock_redis():
    return MockRedis()
