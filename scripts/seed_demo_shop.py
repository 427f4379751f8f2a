"""
Seed a demo shop: the maintenance service catalog, one demo vehicle and
two weeks of technician shifts.

Usage:
    python scripts/seed_demo_shop.py
"""
import asyncio
import logging
from datetime import date, timedelta

from sqlalchemy import select

from autobay.database import async_session_factory, dispose_engine
from autobay.models.catalog import MaintenanceServiceRecord, VehicleRecord
from autobay.models.technician_schedule import TechnicianScheduleRecord
from autobay.schemas.appointment import Shift

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SCHEDULE_DAYS = 14

TECHNICIANS = {
    "tech-001": "Wei Zhang",
    "tech-002": "Lena Ortiz",
}

SERVICES = [
    {
        "id": "svc-oil-change",
        "name": "Oil change",
        "description": "Engine oil and oil filter replacement",
        "category": "regular",
        "duration_minutes": 60,
        "base_price": 580.0,
        "available_technicians": ["tech-001", "tech-002"],
        "required_parts": ["engine-oil", "oil-filter"],
    },
    {
        "id": "svc-tire-repair",
        "name": "Tire repair",
        "description": "Puncture repair and pressure check",
        "category": "repair",
        "duration_minutes": 45,
        "base_price": 200.0,
        "available_technicians": ["tech-002"],
        "required_parts": [],
    },
    {
        "id": "svc-brake-repair",
        "name": "Brake system repair",
        "description": "Brake pad and disc inspection and replacement",
        "category": "repair",
        "duration_minutes": 90,
        "base_price": 800.0,
        "available_technicians": ["tech-001"],
        "required_parts": ["brake-pads"],
    },
    {
        "id": "svc-annual-inspection",
        "name": "Annual inspection",
        "description": "Full vehicle safety inspection",
        "category": "inspection",
        "duration_minutes": 120,
        "base_price": 1200.0,
        "available_technicians": ["tech-001", "tech-002"],
        "required_parts": [],
    },
    {
        "id": "svc-ac-repair",
        "name": "Air conditioning repair",
        "description": "A/C diagnosis and refrigerant recharge",
        "category": "repair",
        "duration_minutes": 60,
        "base_price": 400.0,
        "available_technicians": ["tech-002"],
        "required_parts": ["refrigerant"],
    },
    {
        "id": "svc-transmission-fluid",
        "name": "Transmission fluid change",
        "description": "Automatic transmission fluid replacement",
        "category": "regular",
        "duration_minutes": 90,
        "base_price": 880.0,
        "available_technicians": ["tech-001"],
        "required_parts": ["transmission-fluid"],
    },
]

DEMO_VEHICLE = {
    "id": "veh-demo-001",
    "brand": "Toyota",
    "model": "Corolla",
    "license_plate": "DEMO-001",
    "owner": "demo-customer",
}

# Weekday shifts per technician; weekends off
WEEKDAY_SHIFTS = {
    "tech-001": [Shift(start_time="09:00", end_time="13:00"), Shift(start_time="14:00", end_time="18:00")],
    "tech-002": [Shift(start_time="10:00", end_time="18:00")],
}


async def seed():
    async with async_session_factory() as session:
        for data in SERVICES:
            if await session.get(MaintenanceServiceRecord, data["id"]):
                logger.info("Service %s already exists. Skipping.", data["id"])
                continue
            session.add(MaintenanceServiceRecord(**data))
        await session.commit()
        logger.info("Seeded %d maintenance services.", len(SERVICES))

    async with async_session_factory() as session:
        if await session.get(VehicleRecord, DEMO_VEHICLE["id"]):
            logger.info("Demo vehicle already exists. Skipping.")
        else:
            session.add(VehicleRecord(**DEMO_VEHICLE))
            await session.commit()
            logger.info("Seeded demo vehicle %s.", DEMO_VEHICLE["license_plate"])

    async with async_session_factory() as session:
        created = 0
        today = date.today()
        for offset in range(SCHEDULE_DAYS):
            day = today + timedelta(days=offset)
            if day.weekday() >= 5:
                continue
            for technician_id, shifts in WEEKDAY_SHIFTS.items():
                result = await session.execute(
                    select(TechnicianScheduleRecord.id).where(
                        TechnicianScheduleRecord.technician_id == technician_id,
                        TechnicianScheduleRecord.schedule_date == day,
                    )
                )
                if result.scalar_one_or_none():
                    continue
                session.add(TechnicianScheduleRecord(
                    technician_id=technician_id,
                    technician_name=TECHNICIANS[technician_id],
                    schedule_date=day,
                    shifts=[s.model_dump(mode="json") for s in shifts],
                    appointment_ids=[],
                ))
                created += 1
        await session.commit()
        logger.info("Seeded %d technician schedule days.", created)

    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(seed())
