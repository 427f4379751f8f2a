"""
Slot availability checks against existing appointments.

The same overlap rule is enforced at commit time by the appointment store,
because a recommendation may be stale by the time the customer confirms.
"""
from typing import Iterable

from autobay.schemas.appointment import Appointment, AppointmentStatus, TimeSlot

BLOCKING_EXCLUDED = frozenset({AppointmentStatus.CANCELLED})


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval overlap: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def blocks(appointment: Appointment, slot: TimeSlot, technician_id: str) -> bool:
    """True if the appointment occupies the technician at any point of the slot."""
    if appointment.status in BLOCKING_EXCLUDED:
        return False
    booked = appointment.time_slot
    return (
        booked.technician == technician_id
        and booked.date == slot.date
        and overlaps(slot.start_minute, slot.end_minute, booked.start_minute, booked.end_minute)
    )


def is_slot_free(
    slot: TimeSlot,
    technician_id: str,
    existing_appointments: Iterable[Appointment],
) -> bool:
    return not any(blocks(a, slot, technician_id) for a in existing_appointments)


class SlotAvailabilityChecker:
    """Appointments grouped by technician so each slot check scans one list."""

    def __init__(self, existing_appointments: Iterable[Appointment]):
        self._by_technician: dict[str, list[Appointment]] = {}
        for appointment in existing_appointments:
            if appointment.status in BLOCKING_EXCLUDED:
                continue
            self._by_technician.setdefault(appointment.technician_id, []).append(appointment)

    def is_slot_free(self, slot: TimeSlot, technician_id: str) -> bool:
        return is_slot_free(slot, technician_id, self._by_technician.get(technician_id, ()))
