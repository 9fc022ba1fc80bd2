"""
Centralized Test Configuration.

In-memory SQLite database, in-memory Redis and deterministic stand-ins for
the geocoder, distance provider and email transport.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, get_session_factory, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.dependencies import get_geocoder, get_distance_provider, get_email_transport
from backend.app.core.exceptions import GeocodingError, DistanceError
from backend.app.core.jwt import create_access_token, principal_payload
from backend.app.core.security import get_password_hash
from backend.app.domain.geo import Coordinates
from backend.app.domain.parcels.lifecycle_service import ParcelLifecycleService
from backend.app.domain.drivers.location_service import DriverLocationService
from backend.app.domain.drivers.driver_service import DriverService
from backend.app.models.user import User
from backend.app.models.driver import Driver
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_status_log import ParcelStatusLog
from backend.app.models.enums import UserRole
from backend.app.models.driver_enums import DriverStatus, CourierMode
from backend.app.models.parcel_enums import ParcelStatus, ParcelType, TransportMode
from backend.app.services.geocoding import Geocoder, DistanceProvider
from backend.app.services.notification_service import EmailTransport, NotificationDispatcher
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

TEST_PASSWORD = "password123"
# bcrypt is slow; hash once
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

# Place name -> coordinates known to the fake geocoder
PLACES = {
    "nairobi cbd": Coordinates(-1.2864, 36.8172),
    "westlands": Coordinates(-1.2676, 36.8108),
    "westlands mall": Coordinates(-1.2667, 36.8108),  # ~0.1 km from Westlands
    "parklands": Coordinates(-1.2630, 36.8150),       # ~0.7 km from Westlands
    "thika": Coordinates(-1.0333, 37.0693),
    "mombasa": Coordinates(-4.0435, 39.6682),
}


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
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
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakeGeocoder(Geocoder):
    name = "fake"

    def __init__(self, places=None):
        self.places = dict(PLACES if places is None else places)
        self.calls = []

    async def geocode(self, place: str) -> Coordinates:
        self.calls.append(place)
        if not place or not place.strip():
            raise GeocodingError("Location is empty")
        coords = self.places.get(place.strip().lower())
        if coords is None:
            raise GeocodingError(f'No geocoding results found for location: "{place}"')
        return coords


class FakeDistanceProvider(DistanceProvider):
    def __init__(self, distance_km: float = 10.0):
        self.distance = distance_km
        self.error = None

    async def distance_km(self, origin, destination, origin_coords=None, destination_coords=None) -> float:
        if self.error:
            raise self.error
        return self.distance


class RecordingTransport(EmailTransport):
    """Collects emails instead of sending them; fail=True simulates an SMTP outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append({"to": to, "subject": subject, "body": body})

    def recipients(self):
        return [mail["to"] for mail in self.sent]


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by token revocation
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# External collaborators (fresh per test, wired into the app)

@pytest.fixture
def geocoder():
    return FakeGeocoder()

@pytest.fixture
def distance_provider():
    return FakeDistanceProvider()

@pytest.fixture
def email_transport():
    return RecordingTransport()

@pytest.fixture(autouse=True)
def collaborator_overrides(geocoder, distance_provider, email_transport):
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.dependency_overrides[get_distance_provider] = lambda: distance_provider
    app.dependency_overrides[get_email_transport] = lambda: email_transport
    yield
    for dependency in (get_geocoder, get_distance_provider, get_email_transport):
        app.dependency_overrides.pop(dependency, None)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

@pytest.fixture
def session_factory():
    return TestingSessionLocal

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# Services bound to the test session

@pytest.fixture
def notifier(email_transport):
    return NotificationDispatcher(TestingSessionLocal, email_transport)

@pytest.fixture
def lifecycle_service(db_session, geocoder, distance_provider, notifier):
    return ParcelLifecycleService(db_session, geocoder, distance_provider, notifier)

@pytest.fixture
def location_service(db_session, geocoder, notifier):
    return DriverLocationService(db_session, geocoder, notifier)

@pytest.fixture
def driver_service(db_session):
    return DriverService(db_session)


# Principals

def auth_headers(principal_id: int, email: str, role: UserRole) -> dict:
    token = create_access_token(data=principal_payload(email, principal_id, role.value))
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def make_user(db_session):
    async def _make_user(email: str, name: str = "Test User", role: UserRole = UserRole.USER) -> User:
        user = User(name=name, email=email, hashed_password=TEST_PASSWORD_HASH, role=role, is_active=True)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make_user

@pytest.fixture
def make_driver(db_session):
    async def _make_driver(
        email: str,
        name: str = "Test Driver",
        status: DriverStatus = DriverStatus.AVAILABLE,
        can_receive_assignments: bool = None
    ) -> Driver:
        if can_receive_assignments is None:
            can_receive_assignments = status == DriverStatus.AVAILABLE
        driver = Driver(
            name=name,
            email=email,
            hashed_password=TEST_PASSWORD_HASH,
            mode=CourierMode.MOTORCYCLE,
            status=status,
            can_receive_assignments=can_receive_assignments,
        )
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        return driver
    return _make_driver

@pytest.fixture
def make_parcel(db_session):
    """Insert a parcel row directly, bypassing geocoding and pricing."""
    counter = {"next": 5000}

    async def _make_parcel(
        status: ParcelStatus = ParcelStatus.PENDING,
        driver_id: int = None,
        receiver_id: int = None,
        sender_id: int = None,
        destination: Coordinates = PLACES["westlands"],
        tracking_number: int = None,
        tracking_id: str = None,
        price: int = 500,
        with_log: bool = True
    ) -> Parcel:
        counter["next"] += 1
        number = tracking_number or counter["next"]
        parcel = Parcel(
            tracking_id=tracking_id or f"PKG-{number}",
            tracking_number=number,
            sender_name="Alice Sender",
            sender_email="alice@example.com",
            receiver_name="Bob Receiver",
            receiver_email="bob@example.com",
            sender_id=sender_id,
            receiver_id=receiver_id,
            from_location="Nairobi CBD",
            to_location="Westlands",
            from_lat=PLACES["nairobi cbd"].lat,
            from_lng=PLACES["nairobi cbd"].lng,
            destination_lat=destination.lat if destination else None,
            destination_lng=destination.lng if destination else None,
            distance=4.0,
            type=ParcelType.BOXED_PACKAGE,
            weight=2.0,
            mode=TransportMode.STANDARD,
            price=price,
            status=status,
            driver_id=driver_id,
        )
        db_session.add(parcel)
        await db_session.flush()
        if with_log:
            db_session.add(ParcelStatusLog(parcel_id=parcel.id, status=status))
        await db_session.commit()
        await db_session.refresh(parcel)
        return parcel
    return _make_parcel

@pytest.fixture
async def admin(make_user):
    return await make_user("admin@senditcourier.com", name="Admin", role=UserRole.ADMIN)

@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin.id, admin.email, UserRole.ADMIN)
