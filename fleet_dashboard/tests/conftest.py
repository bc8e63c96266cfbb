"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from fleet_dashboard.app.main import app
from fleet_dashboard.app.db.session import get_db, Base
from fleet_dashboard.app.core.redis_client import get_redis
from fleet_dashboard.app.core.dependencies import get_change_feed, get_photo_storage, get_fleet_view
from fleet_dashboard.app.core.reliability import CircuitBreaker
from fleet_dashboard.app.models.vehicle import Vehicle
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus
from fleet_dashboard.app.services.change_feed import ChangeFeed
from fleet_dashboard.app.services.fleet_gateway import FleetGateway
from fleet_dashboard.app.services.fleet_view import FleetView
from fleet_dashboard.app.services.photo_service import PhotoService
from fleet_dashboard.app.services.photo_storage import LocalPhotoStorage
import fleet_dashboard.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_HEADERS = {"X-Admin-Key": "change-this-admin-key"}

# A fixed fleet-local "now" for tests that need one
NOW = datetime(2025, 6, 2, 12, 0, 0)

# 1x1 JPEG-ish payloads; content is irrelevant to storage
PHOTO_B64 = "aGVsbG8gcGhvdG8="
PHOTO_DATA_URL = f"data:image/jpeg;base64,{PHOTO_B64}"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiry = {}
        self.published = []
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            self.expiry.pop(key, None)
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def publish(self, channel, message):
        if self._closed:
            raise ConnectionError("Redis connection closed")
        self.published.append((channel, message))
        return 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.expiry = {}
            self.published = []

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def change_feed(mock_redis):
    return ChangeFeed(redis=mock_redis)


@pytest.fixture
def photo_storage(tmp_path):
    return LocalPhotoStorage(str(tmp_path / "photos"))


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway(db_session, change_feed):
    return FleetGateway(db_session, change_feed)


@pytest.fixture
def photo_service(db_session, photo_storage):
    return PhotoService(db_session, photo_storage, CircuitBreaker(failure_threshold=3, reset_timeout=30))


@pytest.fixture
def make_vehicle(db_session):
    async def _make(plate_number="EL12345", status=VehicleStatus.FREE, **fields):
        vehicle = Vehicle(
            plate_number=plate_number,
            model=fields.pop("model", "Tesla Model 3"),
            status=status,
            location=fields.pop("location", "SNØ P-hus | APCOA PARKING"),
            battery_level=fields.pop("battery_level", 85),
            fuel_level=fields.pop("fuel_level", 90),
            mileage=fields.pop("mileage", 15000),
            last_updated=NOW,
            **fields
        )
        db_session.add(vehicle)
        await db_session.commit()
        await db_session.refresh(vehicle)
        return vehicle
    return _make


@pytest.fixture
def fleet_view(session_factory, change_feed):
    """Fleet view over the test database, following the test change feed."""
    async def load():
        async with session_factory() as session:
            return await FleetGateway(session).get_all_vehicles()

    view = FleetView(load)
    view.attach(change_feed)
    yield view
    view.detach()


@pytest.fixture
async def client(session_factory, mock_redis, change_feed, photo_storage, fleet_view):
    """Async client for testing."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_change_feed] = lambda: change_feed
    app.dependency_overrides[get_photo_storage] = lambda: photo_storage
    app.dependency_overrides[get_fleet_view] = lambda: fleet_view

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client
