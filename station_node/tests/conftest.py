"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select, update

from station_node.app.main import app, install_services
from station_node.app.core.config import Settings
from station_node.app.core.context import StationContext
from station_node.app.db.session import Base, create_session_factory, create_station_engine
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.models.queue_enums import QueueStatus, QueueType
from station_node.app.models.route import Route
from station_node.app.models.vehicle import Vehicle, VehicleAuthorizedStation
from station_node.app.models.vehicle_queue import VehicleQueue
from station_node.app.services.booking_engine import BookingEngine
from station_node.app.services.notifier import ChangeNotifier
from station_node.app.services.overnight_transfer import OvernightTransferScheduler
from station_node.app.services.queue_store import QueueStore
from station_node.app.services.vehicle_directory import VehicleDirectory

from station_node.tests.stations import MAHDIA, SOUSSE, STATION_ID, TUNIS


def make_engine(url: str):
    """
    SQLite engine where every transaction takes the write lock up front.

    Concurrent transactions then queue on the database lock instead of
    failing on a lock upgrade.
    """
    engine = create_station_engine(url, connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
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
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class RecordingNotifier(ChangeNotifier):
    """Keeps every published event for assertions."""

    def __init__(self, station_id: str):
        super().__init__(station_id)
        self.events = []

    async def publish(self, event):
        self.events.append(event)

    def named(self, name):
        return [e for e in self.events if e.event == name]


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'station.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def redis():
    return MockRedis()


@pytest.fixture
def notifier():
    return RecordingNotifier(STATION_ID)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        station_id=STATION_ID,
        station_name="Monastir Main Station",
        scheduler_enabled=False,
    )


@pytest.fixture
def ctx(test_settings, session_factory, redis, notifier):
    return StationContext.build(test_settings, session_factory, redis, notifier)


@pytest.fixture
def prices(ctx):
    return RoutePriceLookup(ctx)


@pytest.fixture
def directory(ctx, prices):
    return VehicleDirectory(ctx, prices)


@pytest.fixture
def queue_store(ctx, directory, prices):
    return QueueStore(ctx, directory, prices)


@pytest.fixture
def booking_engine(ctx, prices):
    return BookingEngine(ctx, prices)


@pytest.fixture
def transfer_scheduler(ctx, queue_store):
    return OvernightTransferScheduler(ctx, queue_store)


class Seeder:
    """Writes master data and queue fixtures straight to the store."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def route(self, station_id: str, station_name: str, base_price: float) -> Route:
        async with self.session_factory() as session:
            async with session.begin():
                route = Route(station_id=station_id, station_name=station_name, base_price=base_price)
                session.add(route)
            return route

    async def vehicle(
        self,
        license_plate: str,
        capacity: int = 8,
        destinations=((SOUSSE, "Sousse"),),
        default_destination_id: str = None,
        is_active: bool = True,
        is_available: bool = True,
    ) -> Vehicle:
        async with self.session_factory() as session:
            async with session.begin():
                vehicle = Vehicle(
                    license_plate=license_plate,
                    capacity=capacity,
                    is_active=is_active,
                    is_available=is_available,
                    default_destination_id=default_destination_id,
                )
                vehicle.authorized_stations = [
                    VehicleAuthorizedStation(
                        station_id=station_id,
                        station_name=station_name,
                        priority=priority,
                        is_default=station_id == default_destination_id,
                    )
                    for priority, (station_id, station_name) in enumerate(destinations, start=1)
                ]
                session.add(vehicle)
            return vehicle

    async def queue_rows(self, destination_id: str, queue_type: QueueType = None):
        async with self.session_factory() as session:
            stmt = select(VehicleQueue).where(VehicleQueue.destination_id == destination_id)
            if queue_type is not None:
                stmt = stmt.where(VehicleQueue.queue_type == queue_type)
            result = await session.execute(stmt.order_by(VehicleQueue.queue_type, VehicleQueue.queue_position))
            return list(result.scalars().all())

    async def entry(self, license_plate: str):
        async with self.session_factory() as session:
            result = await session.execute(select(VehicleQueue).where(VehicleQueue.license_plate == license_plate))
            return result.scalar_one_or_none()

    async def set_seats(self, license_plate: str, available_seats: int, status: QueueStatus = None):
        values = {"available_seats": available_seats}
        if status is not None:
            values["status"] = status
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(VehicleQueue).where(VehicleQueue.license_plate == license_plate).values(**values)
                )


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
async def routes(seed):
    await seed.route(SOUSSE, "Sousse", 10.0)
    await seed.route(MAHDIA, "Mahdia", 7.5)
    await seed.route(TUNIS, "Tunis", 15.0)


@pytest.fixture
async def client(ctx):
    """Async client for testing, wired to the test station context."""
    install_services(app, ctx)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
