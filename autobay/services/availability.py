"""
Technician availability index - which eligible technicians are on an
available shift at a given slot start.
"""
from collections import defaultdict
from datetime import date
from typing import Optional, Sequence

from autobay.integrations.base import TechnicianScheduleStore
from autobay.schemas.appointment import ShiftStatus, TechnicianSchedule, TimeSlot
from autobay.utils.timeofday import to_minutes


async def get_schedules(
    store: TechnicianScheduleStore,
    start_date: date,
    end_date: date,
    technician_ids: Sequence[str],
) -> dict[str, list[TechnicianSchedule]]:
    """
    Fetch shift records for each requested technician across the window.
    Every requested technician gets a key, possibly with an empty list.

    DataUnavailableError from the store propagates; any other error is left
    untranslated. Partial data is never returned.
    """
    by_technician: dict[str, list[TechnicianSchedule]] = {tid: [] for tid in technician_ids}
    if not technician_ids:
        return by_technician

    schedules = await store.query(start_date, end_date, technician_ids)

    for schedule in schedules:
        if schedule.technician_id in by_technician:
            by_technician[schedule.technician_id].append(schedule)

    for items in by_technician.values():
        items.sort(key=lambda s: s.date)
    return by_technician


def is_available(schedule: TechnicianSchedule, slot: TimeSlot) -> bool:
    """
    True if some available shift on the slot's date contains the slot start.
    Shift ranges are half-open: the start minute is included, the end minute is not.
    """
    if schedule.date != slot.date:
        return False
    slot_start = slot.start_minute
    for shift in schedule.shifts:
        if shift.status != ShiftStatus.AVAILABLE:
            continue
        if to_minutes(shift.start_time) <= slot_start < to_minutes(shift.end_time):
            return True
    return False


class TechnicianAvailabilityIndex:
    """Schedules keyed by (technician, date) for constant-time slot lookups."""

    def __init__(self, schedules: dict[str, list[TechnicianSchedule]]):
        self._by_key: dict[tuple[str, date], list[TechnicianSchedule]] = defaultdict(list)
        self._names: dict[str, str] = {}
        for technician_id, items in schedules.items():
            for schedule in items:
                self._by_key[(technician_id, schedule.date)].append(schedule)
                if schedule.technician_name:
                    self._names[technician_id] = schedule.technician_name

    @classmethod
    async def load(
        cls,
        store: TechnicianScheduleStore,
        start_date: date,
        end_date: date,
        technician_ids: Sequence[str],
    ) -> "TechnicianAvailabilityIndex":
        return cls(await get_schedules(store, start_date, end_date, technician_ids))

    def is_technician_available(self, technician_id: str, slot: TimeSlot) -> bool:
        return any(
            is_available(schedule, slot)
            for schedule in self._by_key.get((technician_id, slot.date), ())
        )

    def available_technicians(self, slot: TimeSlot, eligible_ids: Sequence[str]) -> list[str]:
        """Eligible technicians on an available shift at the slot, in eligible-list order."""
        return [tid for tid in eligible_ids if self.is_technician_available(tid, slot)]

    def technician_name(self, technician_id: str) -> Optional[str]:
        return self._names.get(technician_id)
