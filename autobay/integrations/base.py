"""
Abstract collaborator interfaces - everything the booking core reads from or
writes to lives behind one of these.

Store failures (unreachable database, timeouts) surface as DataUnavailableError.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Optional, Sequence

from autobay.schemas.appointment import (
    Appointment,
    AppointmentStatus,
    MaintenanceService,
    TechnicianSchedule,
    TimeSlot,
    Vehicle,
)


class VehicleCatalog(ABC):
    @abstractmethod
    async def get(self, vehicle_id: str) -> Optional[Vehicle]:
        ...


class ServiceCatalog(ABC):
    @abstractmethod
    async def get(self, service_id: str) -> Optional[MaintenanceService]:
        ...


class TechnicianScheduleStore(ABC):
    """Technician shift records, one per technician per date."""

    @abstractmethod
    async def query(
        self,
        start_date: date,
        end_date: date,
        technician_ids: Sequence[str],
    ) -> list[TechnicianSchedule]:
        """Schedules for the given technicians with start_date <= date <= end_date."""
        ...

    @abstractmethod
    async def mark_booked(self, technician_id: str, slot: TimeSlot, appointment_id: str) -> None:
        """Record that a confirmed appointment consumes the technician's slot."""
        ...

    @abstractmethod
    async def release(self, technician_id: str, slot: TimeSlot, appointment_id: str) -> None:
        """Undo mark_booked after a cancellation."""
        ...

    @abstractmethod
    async def upsert(self, schedule: TechnicianSchedule) -> TechnicianSchedule:
        """Replace the shifts of one technician on one date."""
        ...


class AppointmentStore(ABC):
    """
    Persisted appointments.

    insert_if_free and confirm_if_free are conditional writes: the overlap
    check and the write happen as one atomic unit in the database.
    """

    @abstractmethod
    async def get(self, appointment_id: str) -> Optional[Appointment]:
        ...

    @abstractmethod
    async def find_overlapping(
        self,
        technician_id: str,
        on_date: date,
        start_time: str,
        end_time: str,
        exclude_statuses: Iterable[AppointmentStatus] = (AppointmentStatus.CANCELLED,),
    ) -> list[Appointment]:
        ...

    @abstractmethod
    async def list_active(
        self,
        technician_ids: Sequence[str],
        start_date: date,
        end_date: date,
    ) -> list[Appointment]:
        """Non-cancelled appointments of the given technicians in the date range."""
        ...

    @abstractmethod
    async def insert_if_free(self, appointment: Appointment) -> Appointment:
        """Insert unless an overlapping non-cancelled appointment exists. Raises SlotConflictError."""
        ...

    @abstractmethod
    async def confirm_if_free(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
    ) -> Appointment:
        """
        Move a pending appointment to new_status and set confirmation_sent, only if
        no other non-cancelled appointment overlaps its slot. Raises SlotConflictError,
        InvalidTransitionError (no longer pending) or NotFoundError.
        """
        ...

    @abstractmethod
    async def update_status(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        expected_status: AppointmentStatus,
    ) -> Appointment:
        """Compare-and-set status. Raises InvalidTransitionError if the status moved."""
        ...

    @abstractmethod
    async def list_upcoming(self, from_date: date, limit: int = 5) -> list[Appointment]:
        ...

    @abstractmethod
    async def list_reminder_candidates(self, start_date: date, end_date: date) -> list[Appointment]:
        """Confirmed or processed appointments dated within the range."""
        ...

    @abstractmethod
    async def mark_reminder_sent(self, appointment_id: str, hours_before: int) -> None:
        ...


class NotificationSender(ABC):
    """
    Customer notifications. Fire-and-forget: implementations log failures
    and return False, they never raise.
    """

    @abstractmethod
    async def send_confirmation(self, appointment: Appointment) -> bool:
        ...

    @abstractmethod
    async def send_reminder(self, appointment: Appointment, hours_before: int) -> bool:
        ...
