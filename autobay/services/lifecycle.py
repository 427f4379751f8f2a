"""
Appointment lifecycle - status transitions and their side effects.

pending -> confirmed | processed | cancelled
confirmed -> processed | in_progress | cancelled
processed -> in_progress | cancelled
in_progress -> completed
completed, cancelled are terminal.

Confirmation re-checks the slot atomically in the store, then records the
booking on the technician schedule and notifies the customer. Neither of
those two follow-ups can undo a confirmation: failures are logged and alerted.
"""
import logging

from autobay.errors import BookingError, InvalidTransitionError, NotFoundError
from autobay.integrations.base import (
    AppointmentStore,
    NotificationSender,
    TechnicianScheduleStore,
)
from autobay.schemas.appointment import Appointment, AppointmentStatus
from autobay.utils.alerting import AlertType, send_alert

logger = logging.getLogger(__name__)

S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.PROCESSED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PROCESSED, S.IN_PROGRESS, S.CANCELLED}),
    S.PROCESSED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Statuses whose appointment holds the slot on the technician schedule
SCHEDULED_STATUSES = frozenset({S.CONFIRMED, S.PROCESSED})


def can_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    return requested in TRANSITIONS[current]


def ensure_transition(appointment: Appointment, requested: AppointmentStatus) -> None:
    if not can_transition(appointment.status, requested):
        raise InvalidTransitionError(appointment.id, appointment.status.value, requested.value)


class AppointmentLifecycle:
    def __init__(
        self,
        appointment_store: AppointmentStore,
        schedule_store: TechnicianScheduleStore,
        notifier: NotificationSender,
    ):
        self.appointment_store = appointment_store
        self.schedule_store = schedule_store
        self.notifier = notifier

    async def _load(self, appointment_id: str) -> Appointment:
        appointment = await self.appointment_store.get(appointment_id)
        if appointment is None:
            raise NotFoundError("appointment", appointment_id)
        return appointment

    async def transition(
        self,
        appointment_id: str,
        requested: AppointmentStatus,
    ) -> Appointment:
        """Move an appointment to `requested`, running the side effects of that step."""
        appointment = await self._load(appointment_id)
        ensure_transition(appointment, requested)

        if appointment.status == S.PENDING and requested in SCHEDULED_STATUSES:
            return await self.confirm(appointment, requested)
        if requested == S.CANCELLED:
            return await self.cancel(appointment)
        return await self._advance(appointment, requested)

    async def confirm(
        self,
        appointment: Appointment,
        requested: AppointmentStatus = S.CONFIRMED,
    ) -> Appointment:
        """pending -> confirmed/processed. Raises SlotConflictError if the slot was taken meanwhile."""
        ensure_transition(appointment, requested)
        confirmed = await self.appointment_store.confirm_if_free(appointment.id, requested)

        logger.info(
            "Appointment %s %s for %s",
            confirmed.id, confirmed.status.value, confirmed.time_slot.label(),
            extra={
                "appointment_id": confirmed.id,
                "technician_id": confirmed.technician_id,
                "outcome": confirmed.status.value,
            },
        )

        await self._record_booking(confirmed)
        await self._notify_confirmation(confirmed)
        return confirmed

    async def cancel(self, appointment: Appointment) -> Appointment:
        """Cancel a pending, confirmed or processed appointment. The record is kept."""
        ensure_transition(appointment, S.CANCELLED)
        cancelled = await self.appointment_store.update_status(
            appointment.id, S.CANCELLED, expected_status=appointment.status
        )
        logger.info(
            "Appointment %s cancelled (was %s)", cancelled.id, appointment.status.value,
            extra={"appointment_id": cancelled.id, "outcome": "cancelled"},
        )

        if appointment.status in SCHEDULED_STATUSES:
            try:
                await self.schedule_store.release(
                    cancelled.technician_id, cancelled.time_slot, cancelled.id
                )
            except BookingError as e:
                logger.error(
                    "Failed to release schedule for cancelled appointment %s: %s",
                    cancelled.id, str(e),
                    extra={"appointment_id": cancelled.id, "error_code": e.error_code},
                )
                await send_alert(
                    AlertType.SCHEDULE_WRITEBACK_FAILED,
                    f"Schedule release failed for appointment {cancelled.id}: {e}",
                    extra={"technician_id": cancelled.technician_id},
                )
        return cancelled

    async def _advance(self, appointment: Appointment, requested: AppointmentStatus) -> Appointment:
        updated = await self.appointment_store.update_status(
            appointment.id, requested, expected_status=appointment.status
        )
        logger.info(
            "Appointment %s moved %s -> %s",
            updated.id, appointment.status.value, updated.status.value,
            extra={"appointment_id": updated.id, "outcome": updated.status.value},
        )
        return updated

    async def _record_booking(self, appointment: Appointment) -> None:
        try:
            await self.schedule_store.mark_booked(
                appointment.technician_id, appointment.time_slot, appointment.id
            )
        except BookingError as e:
            # Appointment row is authoritative for overlap checks; the schedule copy can lag
            logger.error(
                "Failed to record booking %s on technician schedule: %s",
                appointment.id, str(e),
                extra={
                    "appointment_id": appointment.id,
                    "technician_id": appointment.technician_id,
                    "error_code": e.error_code,
                },
            )
            await send_alert(
                AlertType.SCHEDULE_WRITEBACK_FAILED,
                f"Schedule write-back failed for appointment {appointment.id}: {e}",
                extra={"technician_id": appointment.technician_id},
            )

    async def _notify_confirmation(self, appointment: Appointment) -> bool:
        sent = await self.notifier.send_confirmation(appointment)
        if not sent:
            await send_alert(
                AlertType.NOTIFICATION_FAILED,
                f"Confirmation for appointment {appointment.id} was not delivered",
                severity="warning",
                extra={"appointment_id": appointment.id},
            )
        return sent
