"""
Tests for autobay/services/recommendations.py - the recommendation engine.

Stores are AsyncMock doubles so each scenario pins exactly which shifts and
bookings exist.
"""
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FIXED_NOW, TECH_A, TECH_B, TODAY, TOMORROW, fixed_clock, make_schedule
from autobay.errors import BookingValidationError, DataUnavailableError
from autobay.integrations.base import AppointmentStore, TechnicianScheduleStore
from autobay.schemas.appointment import (
    Appointment,
    AppointmentSettings,
    AppointmentStatus,
    Customer,
    MaintenanceService,
    TimeSlot,
)
from autobay.services.recommendations import RecommendationEngine, validate_preferred_time
from autobay.services.scoring import RecommendationScorer


def _service(technicians=(TECH_A,)):
    return MaintenanceService(
        id="svc-oil-change",
        name="Oil change",
        category="regular",
        duration_minutes=30,
        base_price=580.0,
        available_technicians=list(technicians),
    )


def _booking(start, end, technician=TECH_A, on_date=TOMORROW, status=AppointmentStatus.CONFIRMED):
    return Appointment(
        id=f"a-{technician}-{start}",
        customer=Customer(name="Ana", phone="+15550001111"),
        vehicle_id="veh-001",
        service_id="svc-oil-change",
        time_slot=TimeSlot(date=on_date, start_time=start, end_time=end, technician=technician),
        status=status,
        estimated_duration=30,
        estimated_cost=580.0,
    )


def _engine(schedules=(), bookings=(), **kwargs):
    schedule_store = AsyncMock(spec=TechnicianScheduleStore)
    schedule_store.query.return_value = list(schedules)
    appointment_store = AsyncMock(spec=AppointmentStore)
    appointment_store.list_active.return_value = list(bookings)
    engine = RecommendationEngine(schedule_store, appointment_store, clock=fixed_clock, **kwargs)
    return engine, schedule_store, appointment_store


def _next_day_only(**overrides):
    """Settings whose booking window ends tomorrow."""
    return AppointmentSettings(max_days_in_advance=1, **overrides)


def _starts(recommendations):
    return [r.time_slot.start_time for r in recommendations]


# ---------------------------------------------------------------------------
# Worked example
# ---------------------------------------------------------------------------

class TestWorkedExample:
    async def test_booked_slot_excluded_rest_of_shift_recommended(self):
        """Shift 10:00-12:00 with a confirmed 10:00-10:30 booking leaves 10:30, 11:00, 11:30."""
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "12:00"),))],
            bookings=[_booking("10:00", "10:30")],
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert _starts(result) == ["10:30", "11:00", "11:30"]
        for rec in result:
            assert rec.technician == TECH_A
            assert rec.time_slot.technician == TECH_A
            assert rec.time_slot.date == TOMORROW
            assert rec.technician_name == "Wei Zhang"
            assert 0 <= rec.score <= 100

    async def test_alternatives_are_nearby_same_day_slots(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "12:00"),))],
            bookings=[_booking("10:00", "10:30")],
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        first = result[0]
        assert [s.start_time for s in first.alternative_slots] == ["11:00", "11:30"]
        assert all(s.date == TOMORROW for s in first.alternative_slots)
        assert all(s.start_time != first.time_slot.start_time for s in first.alternative_slots)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

class TestFiltering:
    async def test_unstaffed_slots_never_recommended(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("14:00", "15:00"),))],
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert _starts(result) == ["14:00", "14:30"]

    async def test_ineligible_technician_ignored(self):
        engine, schedule_store, _ = _engine(
            schedules=[make_schedule(TECH_B, TOMORROW, shifts=(("10:00", "12:00"),))],
        )

        result = await engine.recommend(_service([TECH_A]), _next_day_only(), preferred_date=TOMORROW)

        assert result == []
        assert schedule_store.query.await_args.args[2] == [TECH_A]

    async def test_no_eligible_technicians_returns_empty(self):
        engine, schedule_store, _ = _engine()

        result = await engine.recommend(_service([]), _next_day_only(), preferred_date=TOMORROW)

        assert result == []
        schedule_store.query.assert_not_awaited()

    async def test_slots_inside_lead_time_dropped(self):
        """With a 24h lead time nothing on the current day is bookable."""
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TODAY, shifts=(("09:00", "18:00"),))],
        )

        result = await engine.recommend(
            _service(), _next_day_only(min_hours_in_advance=24), preferred_date=TODAY
        )

        assert result == []

    async def test_lead_time_zero_allows_later_today(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TODAY, shifts=(("07:00", "10:00"),))],
        )

        result = await engine.recommend(
            _service(), _next_day_only(min_hours_in_advance=0), preferred_date=TODAY
        )

        # Opens 09:00, now is 08:00
        assert _starts(result) == ["09:00", "09:30"]

    async def test_past_preferred_date_clamped_to_today(self):
        engine, schedule_store, _ = _engine()

        await engine.recommend(
            _service(), _next_day_only(), preferred_date=TODAY - timedelta(days=10)
        )

        start, end = schedule_store.query.await_args.args[:2]
        assert start == TODAY
        assert end == TOMORROW

    async def test_window_spans_max_days_inclusive(self):
        engine, schedule_store, appointment_store = _engine()

        await engine.recommend(_service(), AppointmentSettings(max_days_in_advance=7))

        start, end = schedule_store.query.await_args.args[:2]
        assert (start, end) == (FIXED_NOW.date(), FIXED_NOW.date() + timedelta(days=7))
        assert appointment_store.list_active.await_args.args[1:] == (start, end)

    async def test_window_capped_from_today_not_preferred_date(self):
        engine, schedule_store, _ = _engine(
            schedules=[make_schedule(TECH_A, TODAY + timedelta(days=4))],
        )

        result = await engine.recommend(
            _service(), AppointmentSettings(max_days_in_advance=2), preferred_date=TODAY + timedelta(days=2)
        )

        assert result == []
        start, end = schedule_store.query.await_args.args[:2]
        assert (start, end) == (TODAY + timedelta(days=2), TODAY + timedelta(days=2))

    async def test_preferred_date_beyond_window_returns_empty(self):
        engine, schedule_store, _ = _engine()

        result = await engine.recommend(
            _service(), AppointmentSettings(max_days_in_advance=2), preferred_date=TODAY + timedelta(days=3)
        )

        assert result == []
        schedule_store.query.assert_not_awaited()

    async def test_second_technician_covers_booked_slot(self):
        engine, _, _ = _engine(
            schedules=[
                make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "11:00"),)),
                make_schedule(TECH_B, TOMORROW, shifts=(("10:00", "11:00"),), name="Lena Ortiz"),
            ],
            bookings=[_booking("10:00", "10:30", technician=TECH_A)],
        )

        result = await engine.recommend(
            _service([TECH_A, TECH_B]), _next_day_only(), preferred_date=TOMORROW
        )

        by_start = {r.time_slot.start_time: r for r in result}
        assert by_start["10:00"].technician == TECH_B
        assert by_start["10:30"].technician == TECH_A

    async def test_cancelled_booking_frees_slot(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "11:00"),))],
            bookings=[_booking("10:00", "10:30", status=AppointmentStatus.CANCELLED)],
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert _starts(result) == ["10:00", "10:30"]


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

class TestRanking:
    async def test_truncated_to_max_recommendations(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("09:00", "18:00"),))],
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert len(result) == 5
        # Equal scores keep chronological order
        assert _starts(result) == ["09:00", "09:30", "10:00", "10:30", "11:00"]

    async def test_custom_limits(self):
        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("09:00", "18:00"),))],
            max_recommendations=2,
            max_alternative_slots=1,
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert len(result) == 2
        assert all(len(r.alternative_slots) <= 1 for r in result)

    async def test_deterministic_across_calls(self):
        engine, _, _ = _engine(
            schedules=[
                make_schedule(TECH_A, TOMORROW, shifts=(("09:00", "13:00"),)),
                make_schedule(TECH_B, TOMORROW, shifts=(("11:00", "18:00"),), name="Lena Ortiz"),
            ],
            bookings=[_booking("11:00", "12:00")],
        )
        settings = _next_day_only()

        first = await engine.recommend(_service([TECH_A, TECH_B]), settings, TOMORROW, "15:00")
        second = await engine.recommend(_service([TECH_A, TECH_B]), settings, TOMORROW, "15:00")

        assert [r.model_dump() for r in first] == [r.model_dump() for r in second]

    async def test_extra_factor_reorders(self):
        def prefer_afternoon(slot, context):
            return (0, None) if slot.start_minute >= 13 * 60 else (-30, None)

        engine, _, _ = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW, shifts=(("11:00", "14:00"),))],
            scorer=RecommendationScorer(extra_factors=[prefer_afternoon]),
        )

        result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert _starts(result)[:2] == ["13:00", "13:30"]
        assert result[0].score > result[-1].score


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

class TestFailures:
    async def test_schedule_store_unavailable_returns_empty_and_alerts(self):
        engine, schedule_store, _ = _engine()
        schedule_store.query.side_effect = DataUnavailableError("schedules down")

        with patch("autobay.services.recommendations.send_alert", new_callable=AsyncMock) as mock_alert:
            result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert result == []
        mock_alert.assert_awaited_once()
        assert mock_alert.call_args.args[0] == "schedule_data_unavailable"

    async def test_appointment_store_unavailable_returns_empty(self):
        engine, _, appointment_store = _engine(
            schedules=[make_schedule(TECH_A, TOMORROW)],
        )
        appointment_store.list_active.side_effect = DataUnavailableError("appointments down")

        with patch("autobay.services.recommendations.send_alert", new_callable=AsyncMock):
            result = await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        assert result == []

    async def test_unexpected_store_error_propagates(self):
        engine, schedule_store, _ = _engine()
        schedule_store.query.side_effect = ValueError("corrupt shift row")

        with patch("autobay.services.recommendations.send_alert", new_callable=AsyncMock) as mock_alert:
            with pytest.raises(ValueError):
                await engine.recommend(_service(), _next_day_only(), preferred_date=TOMORROW)

        mock_alert.assert_not_awaited()

    async def test_preferred_time_outside_hours_rejected(self):
        engine, schedule_store, _ = _engine()

        with pytest.raises(BookingValidationError) as exc_info:
            await engine.recommend(_service(), _next_day_only(), TOMORROW, "19:00")

        assert exc_info.value.field == "preferredTime"
        schedule_store.query.assert_not_awaited()


class TestValidatePreferredTime:
    def test_none_is_accepted(self):
        validate_preferred_time(None, AppointmentSettings())

    def test_opening_time_accepted(self):
        validate_preferred_time("09:00", AppointmentSettings())

    def test_closing_time_rejected(self):
        with pytest.raises(BookingValidationError):
            validate_preferred_time("18:00", AppointmentSettings())

    def test_malformed_rejected(self):
        with pytest.raises(BookingValidationError) as exc_info:
            validate_preferred_time("9am", AppointmentSettings())
        assert exc_info.value.field == "preferredTime"
