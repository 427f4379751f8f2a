"""
Working calendar - turns business hours and a slot duration into the
day's grid of bookable time slots.
"""
import logging
from datetime import date, timedelta
from typing import Iterator

from autobay.errors import BookingValidationError
from autobay.schemas.appointment import AppointmentSettings, TimeSlot
from autobay.utils.timeofday import format_minutes, to_minutes

logger = logging.getLogger(__name__)


def generate_time_slots(slot_date: date, settings: AppointmentSettings) -> Iterator[TimeSlot]:
    """
    Yield the slot grid for one date: [start, start+d), [start+d, start+2d), ...

    A trailing partial slot that would end after closing time is dropped,
    so no slot ever overruns working hours. Every call yields a fresh sequence.
    """
    day_start = to_minutes(settings.working_hours.start_time)
    day_end = to_minutes(settings.working_hours.end_time)
    duration = settings.time_slot_duration

    if duration <= 0:
        raise BookingValidationError("timeSlotDuration must be positive", field="timeSlotDuration")
    if day_start >= day_end:
        raise BookingValidationError(
            "workingHours.startTime must be earlier than workingHours.endTime",
            field="workingHours",
        )

    current = day_start
    while current < day_end:
        slot_end = current + duration
        if slot_end > day_end:
            logger.debug(
                "Dropping partial slot %s-%s on %s (closes %s)",
                format_minutes(current), format_minutes(min(slot_end, 24 * 60)),
                slot_date, settings.working_hours.end_time,
            )
            break

        yield TimeSlot(
            date=slot_date,
            start_time=format_minutes(current),
            end_time=format_minutes(slot_end),
            is_available=True,
        )
        current = slot_end


def iter_dates(start_date: date, days: int) -> Iterator[date]:
    """start_date through start_date + days, inclusive."""
    for offset in range(days + 1):
        yield start_date + timedelta(days=offset)


def is_on_grid(slot: TimeSlot, settings: AppointmentSettings) -> bool:
    """True if the slot is exactly one grid cell of the working day."""
    day_start = to_minutes(settings.working_hours.start_time)
    day_end = to_minutes(settings.working_hours.end_time)
    duration = settings.time_slot_duration
    return (
        slot.start_minute >= day_start
        and slot.end_minute <= day_end
        and (slot.start_minute - day_start) % duration == 0
        and slot.end_minute - slot.start_minute == duration
    )
