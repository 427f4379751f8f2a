"""
Recommendation engine - ranks bookable (slot, technician) pairs for a service.

Process:
1. Build the search window (preferred date or today, through maxDaysInAdvance)
2. Load technician schedules and active appointments for the window (one read each)
3. Generate each day's slot grid and keep slots with at least one eligible
   technician who is on shift and not already booked
4. Score, pick the best technician, attach nearby alternatives
5. Stable sort by score (ties stay chronological), truncate

Read-only: nothing here writes to a store.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, Sequence

from autobay.errors import BookingValidationError, DataUnavailableError
from autobay.integrations.base import AppointmentStore, TechnicianScheduleStore
from autobay.schemas.appointment import (
    AppointmentRecommendation,
    AppointmentSettings,
    MaintenanceService,
    TimeSlot,
)
from autobay.services.availability import TechnicianAvailabilityIndex
from autobay.services.calendar import generate_time_slots, iter_dates
from autobay.services.scoring import RecommendationScorer, ScoringContext
from autobay.services.slot_checker import SlotAvailabilityChecker
from autobay.utils.alerting import AlertType, send_alert
from autobay.utils.timeofday import slot_start_datetime, to_minutes

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5
MAX_ALTERNATIVE_SLOTS = 4
ALTERNATIVE_WINDOW_SLOTS = 2  # +- this many slot widths, same day


@dataclass
class _OpenSlot:
    slot: TimeSlot
    technicians: list[str]


def _dedupe(ids: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for tid in ids:
        if tid not in seen:
            seen.add(tid)
            ordered.append(tid)
    return ordered


def validate_preferred_time(preferred_time: Optional[str], settings: AppointmentSettings) -> None:
    if preferred_time is None:
        return
    try:
        minute = to_minutes(preferred_time)
    except ValueError as e:
        raise BookingValidationError(str(e), field="preferredTime") from None
    day_start = to_minutes(settings.working_hours.start_time)
    day_end = to_minutes(settings.working_hours.end_time)
    if not day_start <= minute < day_end:
        raise BookingValidationError(
            f"Preferred time {preferred_time} is outside working hours "
            f"{settings.working_hours.start_time}-{settings.working_hours.end_time}",
            field="preferredTime",
        )


class RecommendationEngine:
    def __init__(
        self,
        schedule_store: TechnicianScheduleStore,
        appointment_store: AppointmentStore,
        scorer: Optional[RecommendationScorer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
        max_recommendations: int = MAX_RECOMMENDATIONS,
        max_alternative_slots: int = MAX_ALTERNATIVE_SLOTS,
    ):
        self.schedule_store = schedule_store
        self.appointment_store = appointment_store
        self.scorer = scorer or RecommendationScorer()
        self.tz = tz or timezone.utc
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.max_recommendations = max_recommendations
        self.max_alternative_slots = max_alternative_slots

    async def recommend(
        self,
        service: MaintenanceService,
        settings: AppointmentSettings,
        preferred_date: Optional[date] = None,
        preferred_time: Optional[str] = None,
    ) -> list[AppointmentRecommendation]:
        """
        Up to max_recommendations recommendations, highest score first.

        An empty list means either no availability or unreachable schedule data;
        the two are logged with distinct outcomes.
        """
        validate_preferred_time(preferred_time, settings)

        now = self.clock().astimezone(self.tz)
        today = now.date()
        start_date = max(preferred_date or today, today)
        # Bookable horizon counts from today, whatever the preferred date
        end_date = today + timedelta(days=settings.max_days_in_advance)
        earliest_start = now + timedelta(hours=settings.min_hours_in_advance)
        eligible = _dedupe(service.available_technicians)

        if start_date > end_date:
            logger.info(
                "Preferred date %s is beyond the %d-day booking window", start_date, settings.max_days_in_advance,
                extra={"service_id": service.id, "outcome": "no_availability"},
            )
            return []

        if not eligible:
            logger.info(
                "Service %s has no eligible technicians", service.id,
                extra={"service_id": service.id, "outcome": "no_availability"},
            )
            return []

        try:
            index = await TechnicianAvailabilityIndex.load(
                self.schedule_store, start_date, end_date, eligible
            )
            existing = await self.appointment_store.list_active(eligible, start_date, end_date)
        except DataUnavailableError as e:
            logger.warning(
                "Recommendation data unavailable for service %s: %s", service.id, str(e),
                extra={"service_id": service.id, "outcome": "data_unavailable"},
            )
            await send_alert(
                AlertType.SCHEDULE_DATA_UNAVAILABLE,
                f"Recommendations degraded to empty for service {service.id}: {e}",
                severity="warning",
                extra={"service_id": service.id},
            )
            return []

        checker = SlotAvailabilityChecker(existing)
        recommendations: list[AppointmentRecommendation] = []

        for day in iter_dates(start_date, (end_date - start_date).days):
            open_slots = self._open_slots(day, settings, index, checker, eligible, earliest_start)
            for position, open_slot in enumerate(open_slots):
                recommendations.append(
                    self._build(open_slot, position, open_slots, settings, index, preferred_time)
                )

        # sorted() is stable: equal scores keep chronological order
        ranked = sorted(recommendations, key=lambda r: -r.score)[: self.max_recommendations]

        outcome = "recommended" if ranked else "no_availability"
        logger.info(
            "Service %s: %d open slots, returning %d recommendations (%s to %s)",
            service.id, len(recommendations), len(ranked), start_date, end_date,
            extra={"service_id": service.id, "outcome": outcome},
        )
        return ranked

    def _open_slots(
        self,
        day: date,
        settings: AppointmentSettings,
        index: TechnicianAvailabilityIndex,
        checker: SlotAvailabilityChecker,
        eligible: list[str],
        earliest_start: datetime,
    ) -> list[_OpenSlot]:
        """Slots of one day with at least one eligible technician on shift and free."""
        open_slots = []
        for slot in generate_time_slots(day, settings):
            if slot_start_datetime(slot.date, slot.start_time, self.tz) < earliest_start:
                continue
            technicians = [
                tid for tid in index.available_technicians(slot, eligible)
                if checker.is_slot_free(slot, tid)
            ]
            if technicians:
                open_slots.append(_OpenSlot(slot=slot, technicians=technicians))
        return open_slots

    def _build(
        self,
        open_slot: _OpenSlot,
        position: int,
        day_slots: list[_OpenSlot],
        settings: AppointmentSettings,
        index: TechnicianAvailabilityIndex,
        preferred_time: Optional[str],
    ) -> AppointmentRecommendation:
        best = open_slot.technicians[0]
        best_name = index.technician_name(best)
        scored = self.scorer.score(
            open_slot.slot,
            ScoringContext(
                preferred_time=preferred_time,
                available_technicians=open_slot.technicians,
                technician=best,
                technician_name=best_name,
            ),
        )
        return AppointmentRecommendation(
            time_slot=open_slot.slot.model_copy(update={"technician": best}),
            score=scored.score,
            technician=best,
            technician_name=best_name,
            reasons=scored.reasons,
            alternative_slots=self._alternatives(open_slot, position, day_slots, settings),
        )

    def _alternatives(
        self,
        open_slot: _OpenSlot,
        position: int,
        day_slots: list[_OpenSlot],
        settings: AppointmentSettings,
    ) -> list[TimeSlot]:
        """Other open slots the same day within +-2 slot widths, chronological."""
        reach = ALTERNATIVE_WINDOW_SLOTS * settings.time_slot_duration
        start = open_slot.slot.start_minute
        nearby = [
            other.slot.model_copy(update={"technician": other.technicians[0]})
            for i, other in enumerate(day_slots)
            if i != position and abs(other.slot.start_minute - start) <= reach
        ]
        return nearby[: self.max_alternative_slots]
