"""
SQLAlchemy implementations of the booking stores.

Slot commits are conditional writes, never check-then-write:
- insert_if_free: INSERT ... SELECT ... WHERE NOT EXISTS (overlapping appointment)
- confirm_if_free: UPDATE ... WHERE status = 'pending' AND NOT EXISTS (...)
On PostgreSQL the ex_appointments_no_overlap exclusion constraint backs both
under concurrent transactions; its violation is reported as a SlotConflictError.

Connection-level failures are raised as DataUnavailableError.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, Iterable, Optional, Sequence

from sqlalchemy import and_, exists, insert, literal, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from autobay.errors import (
    DataUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
)
from autobay.integrations.base import (
    AppointmentStore,
    ServiceCatalog,
    TechnicianScheduleStore,
    VehicleCatalog,
)
from autobay.models.appointment import AppointmentRecord
from autobay.models.catalog import MaintenanceServiceRecord, VehicleRecord
from autobay.models.technician_schedule import TechnicianScheduleRecord
from autobay.schemas.appointment import (
    Appointment,
    AppointmentStatus,
    Customer,
    MaintenanceService,
    Shift,
    TechnicianSchedule,
    TimeSlot,
    Vehicle,
)
from autobay.utils.timeofday import format_minutes, to_minutes

logger = logging.getLogger(__name__)

NO_OVERLAP_CONSTRAINT = "ex_appointments_no_overlap"
CANCELLED = AppointmentStatus.CANCELLED.value


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            raise DataUnavailableError(f"{type(self).__name__} unavailable: {e}") from e


def _overlap_clause(
    table,
    technician_id: str,
    on_date: date,
    start_minute: int,
    end_minute: int,
    exclude_statuses: Iterable[str] = (CANCELLED,),
):
    return and_(
        table.technician_id == technician_id,
        table.appointment_date == on_date,
        table.status.not_in(list(exclude_statuses)),
        table.start_minute < end_minute,
        table.end_minute > start_minute,
    )


def _to_appointment(row: AppointmentRecord) -> Appointment:
    return Appointment(
        id=row.id,
        customer=Customer(name=row.customer_name, phone=row.customer_phone, email=row.customer_email),
        vehicle_id=row.vehicle_id,
        service_id=row.service_id,
        time_slot=TimeSlot(
            date=row.appointment_date,
            start_time=format_minutes(row.start_minute),
            end_time=format_minutes(row.end_minute),
            is_available=False,
            technician=row.technician_id,
            appointment_id=row.id,
        ),
        status=AppointmentStatus(row.status),
        estimated_duration=row.estimated_duration,
        estimated_cost=row.estimated_cost,
        notes=row.notes,
        confirmation_sent=row.confirmation_sent,
        reminder_sent=row.reminder_sent,
        reminders_sent_hours=list(row.reminders_sent_hours or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_values(appointment: Appointment) -> dict:
    slot = appointment.time_slot
    return {
        "id": appointment.id,
        "customer_name": appointment.customer.name,
        "customer_phone": appointment.customer.phone,
        "customer_email": appointment.customer.email,
        "vehicle_id": appointment.vehicle_id,
        "service_id": appointment.service_id,
        "technician_id": slot.technician,
        "appointment_date": slot.date,
        "start_minute": slot.start_minute,
        "end_minute": slot.end_minute,
        "status": appointment.status.value,
        "estimated_duration": appointment.estimated_duration,
        "estimated_cost": appointment.estimated_cost,
        "notes": appointment.notes,
        "confirmation_sent": appointment.confirmation_sent,
        "reminder_sent": appointment.reminder_sent,
        "reminders_sent_hours": list(appointment.reminders_sent_hours),
        "created_at": appointment.created_at,
        "updated_at": appointment.updated_at,
    }


class SqlAppointmentStore(_SqlStore, AppointmentStore):

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        async with self._session() as session:
            row = await session.get(AppointmentRecord, appointment_id)
            return _to_appointment(row) if row else None

    async def find_overlapping(
        self,
        technician_id: str,
        on_date: date,
        start_time: str,
        end_time: str,
        exclude_statuses: Iterable[AppointmentStatus] = (AppointmentStatus.CANCELLED,),
    ) -> list[Appointment]:
        clause = _overlap_clause(
            AppointmentRecord, technician_id, on_date,
            to_minutes(start_time), to_minutes(end_time),
            [AppointmentStatus(s).value for s in exclude_statuses],
        )
        async with self._session() as session:
            result = await session.execute(
                select(AppointmentRecord).where(clause).order_by(AppointmentRecord.start_minute)
            )
            return [_to_appointment(r) for r in result.scalars().all()]

    async def list_active(
        self,
        technician_ids: Sequence[str],
        start_date: date,
        end_date: date,
    ) -> list[Appointment]:
        if not technician_ids:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(AppointmentRecord)
                .where(
                    AppointmentRecord.technician_id.in_(list(technician_ids)),
                    AppointmentRecord.appointment_date >= start_date,
                    AppointmentRecord.appointment_date <= end_date,
                    AppointmentRecord.status != CANCELLED,
                )
                .order_by(AppointmentRecord.appointment_date, AppointmentRecord.start_minute)
            )
            return [_to_appointment(r) for r in result.scalars().all()]

    async def insert_if_free(self, appointment: Appointment) -> Appointment:
        values = _row_values(appointment)
        columns = list(values)
        table = AppointmentRecord.__table__
        other = aliased(AppointmentRecord)

        conflict = exists().where(
            _overlap_clause(
                other, values["technician_id"], values["appointment_date"],
                values["start_minute"], values["end_minute"],
            )
        )
        source = select(
            *[literal(values[name], type_=table.c[name].type).label(name) for name in columns]
        ).where(~conflict)
        stmt = insert(table).from_select(columns, source, include_defaults=False)

        async with self._session() as session:
            try:
                result = await session.execute(stmt)
                inserted = result.rowcount
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if NO_OVERLAP_CONSTRAINT in str(e.orig):
                    raise SlotConflictError(values["technician_id"], appointment.time_slot.label()) from None
                raise

        if inserted == 0:
            logger.info(
                "Slot %s already taken for technician %s",
                appointment.time_slot.label(), values["technician_id"],
                extra={"technician_id": values["technician_id"], "outcome": "slot_conflict"},
            )
            raise SlotConflictError(values["technician_id"], appointment.time_slot.label())

        logger.info(
            "Appointment %s stored for %s", appointment.id, appointment.time_slot.label(),
            extra={"appointment_id": appointment.id, "technician_id": values["technician_id"]},
        )
        return appointment

    async def confirm_if_free(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
    ) -> Appointment:
        pending = AppointmentStatus.PENDING.value
        async with self._session() as session:
            row = await session.get(AppointmentRecord, appointment_id)
            if row is None:
                raise NotFoundError("appointment", appointment_id)
            if row.status != pending:
                raise InvalidTransitionError(appointment_id, row.status, new_status.value)

            other = aliased(AppointmentRecord)
            conflict = exists().where(
                other.id != appointment_id,
                _overlap_clause(other, row.technician_id, row.appointment_date, row.start_minute, row.end_minute),
            )
            stmt = (
                update(AppointmentRecord)
                .where(
                    AppointmentRecord.id == appointment_id,
                    AppointmentRecord.status == pending,
                    ~conflict,
                )
                .values(
                    status=new_status.value,
                    confirmation_sent=True,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            try:
                result = await session.execute(stmt)
                updated = result.rowcount
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if NO_OVERLAP_CONSTRAINT in str(e.orig):
                    raise SlotConflictError(row.technician_id, _to_appointment(row).time_slot.label()) from None
                raise

            await session.refresh(row)
            appointment = _to_appointment(row)
            if updated == 0:
                if row.status != pending:
                    raise InvalidTransitionError(appointment_id, row.status, new_status.value)
                raise SlotConflictError(row.technician_id, appointment.time_slot.label())
            return appointment

    async def update_status(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        expected_status: AppointmentStatus,
    ) -> Appointment:
        async with self._session() as session:
            result = await session.execute(
                update(AppointmentRecord)
                .where(
                    AppointmentRecord.id == appointment_id,
                    AppointmentRecord.status == expected_status.value,
                )
                .values(status=new_status.value, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            await session.commit()

            row = await session.get(AppointmentRecord, appointment_id, populate_existing=True)
            if row is None:
                raise NotFoundError("appointment", appointment_id)
            if updated == 0:
                raise InvalidTransitionError(appointment_id, row.status, new_status.value)
            return _to_appointment(row)

    async def list_upcoming(self, from_date: date, limit: int = 5) -> list[Appointment]:
        async with self._session() as session:
            result = await session.execute(
                select(AppointmentRecord)
                .where(
                    AppointmentRecord.appointment_date >= from_date,
                    AppointmentRecord.status != CANCELLED,
                )
                .order_by(AppointmentRecord.appointment_date, AppointmentRecord.start_minute)
                .limit(limit)
            )
            return [_to_appointment(r) for r in result.scalars().all()]

    async def list_reminder_candidates(self, start_date: date, end_date: date) -> list[Appointment]:
        async with self._session() as session:
            result = await session.execute(
                select(AppointmentRecord)
                .where(
                    AppointmentRecord.appointment_date >= start_date,
                    AppointmentRecord.appointment_date <= end_date,
                    AppointmentRecord.status.in_(
                        [AppointmentStatus.CONFIRMED.value, AppointmentStatus.PROCESSED.value]
                    ),
                )
                .order_by(AppointmentRecord.appointment_date, AppointmentRecord.start_minute)
            )
            return [_to_appointment(r) for r in result.scalars().all()]

    async def mark_reminder_sent(self, appointment_id: str, hours_before: int) -> None:
        async with self._session() as session:
            row = await session.get(AppointmentRecord, appointment_id)
            if row is None:
                raise NotFoundError("appointment", appointment_id)
            sent = list(row.reminders_sent_hours or [])
            if hours_before not in sent:
                sent.append(hours_before)
            row.reminders_sent_hours = sent
            row.reminder_sent = True
            await session.commit()


def _to_schedule(row: TechnicianScheduleRecord) -> TechnicianSchedule:
    return TechnicianSchedule(
        technician_id=row.technician_id,
        technician_name=row.technician_name,
        date=row.schedule_date,
        shifts=[Shift.model_validate(s) for s in (row.shifts or [])],
        appointments=list(row.appointment_ids or []),
    )


def _schedule_row_query(technician_id: str, on_date: date, for_update: bool = False):
    """
    Select one technician-day row. Writers of appointment_ids lock it
    (SELECT ... FOR UPDATE) so concurrent confirmations append in turn
    instead of overwriting each other's list.
    """
    stmt = select(TechnicianScheduleRecord).where(
        TechnicianScheduleRecord.technician_id == technician_id,
        TechnicianScheduleRecord.schedule_date == on_date,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return stmt


class SqlTechnicianScheduleStore(_SqlStore, TechnicianScheduleStore):

    async def query(
        self,
        start_date: date,
        end_date: date,
        technician_ids: Sequence[str],
    ) -> list[TechnicianSchedule]:
        if not technician_ids:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(TechnicianScheduleRecord)
                .where(
                    TechnicianScheduleRecord.technician_id.in_(list(technician_ids)),
                    TechnicianScheduleRecord.schedule_date >= start_date,
                    TechnicianScheduleRecord.schedule_date <= end_date,
                )
                .order_by(TechnicianScheduleRecord.schedule_date, TechnicianScheduleRecord.technician_id)
            )
            return [_to_schedule(r) for r in result.scalars().all()]

    async def _get_row(
        self, session: AsyncSession, technician_id: str, on_date: date, for_update: bool = False
    ) -> Optional[TechnicianScheduleRecord]:
        result = await session.execute(_schedule_row_query(technician_id, on_date, for_update))
        return result.scalar_one_or_none()

    async def mark_booked(self, technician_id: str, slot: TimeSlot, appointment_id: str) -> None:
        async with self._session() as session:
            row = await self._get_row(session, technician_id, slot.date, for_update=True)
            if row is None:
                logger.warning(
                    "No schedule for technician %s on %s, booking %s not recorded",
                    technician_id, slot.date, appointment_id,
                    extra={"technician_id": technician_id, "appointment_id": appointment_id},
                )
                return
            ids = list(row.appointment_ids or [])
            if appointment_id not in ids:
                ids.append(appointment_id)
            row.appointment_ids = ids
            await session.commit()

    async def release(self, technician_id: str, slot: TimeSlot, appointment_id: str) -> None:
        async with self._session() as session:
            row = await self._get_row(session, technician_id, slot.date, for_update=True)
            if row is None:
                return
            row.appointment_ids = [a for a in (row.appointment_ids or []) if a != appointment_id]
            await session.commit()

    async def upsert(self, schedule: TechnicianSchedule) -> TechnicianSchedule:
        shifts = [s.model_dump(mode="json") for s in schedule.shifts]
        async with self._session() as session:
            row = await self._get_row(session, schedule.technician_id, schedule.date)
            if row is None:
                row = TechnicianScheduleRecord(
                    technician_id=schedule.technician_id,
                    technician_name=schedule.technician_name,
                    schedule_date=schedule.date,
                    shifts=shifts,
                    appointment_ids=list(schedule.appointments),
                )
                session.add(row)
            else:
                row.shifts = shifts
                if schedule.technician_name:
                    row.technician_name = schedule.technician_name
            await session.commit()
            await session.refresh(row)
            return _to_schedule(row)


class SqlServiceCatalog(_SqlStore, ServiceCatalog):

    async def get(self, service_id: str) -> Optional[MaintenanceService]:
        async with self._session() as session:
            row = await session.get(MaintenanceServiceRecord, service_id)
            if row is None:
                return None
            return MaintenanceService(
                id=row.id,
                name=row.name,
                description=row.description,
                category=row.category,
                duration_minutes=row.duration_minutes,
                base_price=row.base_price,
                available_technicians=list(row.available_technicians or []),
                required_parts=list(row.required_parts or []),
            )


class SqlVehicleCatalog(_SqlStore, VehicleCatalog):

    async def get(self, vehicle_id: str) -> Optional[Vehicle]:
        async with self._session() as session:
            row = await session.get(VehicleRecord, vehicle_id)
            if row is None:
                return None
            return Vehicle(
                id=row.id,
                brand=row.brand,
                model=row.model,
                license_plate=row.license_plate,
                owner=row.owner,
            )
