"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

import autobay.models  # noqa: F401  registers all tables on Base.metadata
from autobay.database import Base
from autobay.integrations.base import NotificationSender
from autobay.integrations.sql_stores import (
    SqlAppointmentStore,
    SqlServiceCatalog,
    SqlTechnicianScheduleStore,
    SqlVehicleCatalog,
)
from autobay.models.catalog import MaintenanceServiceRecord, VehicleRecord
from autobay.models.technician_schedule import TechnicianScheduleRecord
from autobay.schemas.appointment import (
    AppointmentSettings,
    MaintenanceService,
    Shift,
    TechnicianSchedule,
)
from autobay.services.appointment_service import AppointmentService
from autobay.utils.alerting import reset_cooldowns

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# Monday 2026-03-02 08:00 UTC. Tomorrow 09:00 is 25 hours away.
FIXED_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)
TOMORROW = date(2026, 3, 3)

TECH_A = "tech-001"
TECH_B = "tech-002"
SERVICE_ID = "svc-oil-change"
VEHICLE_ID = "veh-001"


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_schedule(technician_id=TECH_A, on_date=TOMORROW, shifts=(("10:00", "12:00"),), name="Wei Zhang"):
    return TechnicianSchedule(
        technician_id=technician_id,
        technician_name=name,
        date=on_date,
        shifts=[Shift(start_time=s, end_time=e) for s, e in shifts],
    )


@pytest.fixture(autouse=True)
def _reset_alert_cooldowns():
    reset_cooldowns()
    yield
    reset_cooldowns()


@pytest.fixture
async def session_factory():
    """In-memory SQLite database shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def appointment_store(session_factory):
    return SqlAppointmentStore(session_factory)


@pytest.fixture
def schedule_store(session_factory):
    return SqlTechnicianScheduleStore(session_factory)


@pytest.fixture
def service_catalog(session_factory):
    return SqlServiceCatalog(session_factory)


@pytest.fixture
def vehicle_catalog(session_factory):
    return SqlVehicleCatalog(session_factory)


@pytest.fixture
def sample_service():
    return MaintenanceService(
        id=SERVICE_ID,
        name="Oil change",
        description="Engine oil and filter",
        category="regular",
        duration_minutes=60,
        base_price=580.0,
        available_technicians=[TECH_A, TECH_B],
        required_parts=["engine-oil"],
    )


@pytest.fixture
def booking_settings():
    """Default booking settings: 09:00-18:00, 30 minute slots, 24h lead time."""
    return AppointmentSettings()


@pytest.fixture
async def seeded(session_factory, sample_service):
    """Catalog rows for the sample service and one vehicle."""
    async with session_factory() as session:
        session.add(MaintenanceServiceRecord(**sample_service.model_dump(mode="json")))
        session.add(VehicleRecord(
            id=VEHICLE_ID, brand="Toyota", model="Corolla", license_plate="ABC-123", owner="cust-1",
        ))
        await session.commit()


@pytest.fixture
def add_schedule(session_factory):
    """Insert a technician schedule row directly."""
    async def _add(schedule: TechnicianSchedule):
        async with session_factory() as session:
            session.add(TechnicianScheduleRecord(
                technician_id=schedule.technician_id,
                technician_name=schedule.technician_name,
                schedule_date=schedule.date,
                shifts=[s.model_dump(mode="json") for s in schedule.shifts],
                appointment_ids=list(schedule.appointments),
            ))
            await session.commit()
    return _add


@pytest.fixture
def mock_notifier():
    """NotificationSender double that reports every send as delivered."""
    notifier = AsyncMock(spec=NotificationSender)
    notifier.send_confirmation.return_value = True
    notifier.send_reminder.return_value = True
    return notifier


@pytest.fixture
def appointment_service(
    booking_settings,
    service_catalog,
    vehicle_catalog,
    schedule_store,
    appointment_store,
    mock_notifier,
    seeded,
):
    return AppointmentService(
        settings=booking_settings,
        service_catalog=service_catalog,
        vehicle_catalog=vehicle_catalog,
        schedule_store=schedule_store,
        appointment_store=appointment_store,
        notifier=mock_notifier,
        clock=fixed_clock,
    )
