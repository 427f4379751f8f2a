"""
Tests for autobay/workers/reminder_dispatch.py - reminder offsets and bookkeeping.
"""
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FIXED_NOW, SERVICE_ID, TECH_A, TOMORROW, VEHICLE_ID, make_schedule
from autobay.schemas.appointment import AppointmentStatus
from autobay.workers.reminder_dispatch import dispatch_due_reminders, run_reminder_dispatch

CUSTOMER = {"name": "Ana Silva", "phone": "+15550001111"}


class _StopLoop(Exception):
    pass


@pytest.fixture
async def confirmed_appointment(appointment_service, add_schedule):
    """Confirmed appointment tomorrow 10:00, i.e. 26 hours after FIXED_NOW."""
    await add_schedule(make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "12:00"),)))
    created = await appointment_service.create_appointment(
        CUSTOMER, VEHICLE_ID, SERVICE_ID,
        {"date": TOMORROW.isoformat(), "startTime": "10:00", "endTime": "10:30", "technician": TECH_A},
    )
    return await appointment_service.update_status(created.id, AppointmentStatus.CONFIRMED)


class TestDispatchDueReminders:
    async def test_nothing_due_yet(self, appointment_service, confirmed_appointment, mock_notifier):
        """26 hours out is outside the 24h offset."""
        sent = await dispatch_due_reminders(appointment_service, FIXED_NOW)

        assert sent == 0
        mock_notifier.send_reminder.assert_not_awaited()

    async def test_day_before_reminder(self, appointment_service, confirmed_appointment, mock_notifier):
        now = FIXED_NOW + timedelta(hours=3)  # 23 hours before start

        sent = await dispatch_due_reminders(appointment_service, now)

        assert sent == 1
        mock_notifier.send_reminder.assert_awaited_once()
        assert mock_notifier.send_reminder.call_args.args[1] == 24
        stored = await appointment_service.get_appointment(confirmed_appointment.id)
        assert stored.reminder_sent is True
        assert stored.reminders_sent_hours == [24]

    async def test_each_offset_sent_once(self, appointment_service, confirmed_appointment, mock_notifier):
        day_before = FIXED_NOW + timedelta(hours=3)
        two_hours_before = FIXED_NOW + timedelta(hours=24, minutes=30)

        assert await dispatch_due_reminders(appointment_service, day_before) == 1
        assert await dispatch_due_reminders(appointment_service, day_before) == 0
        assert await dispatch_due_reminders(appointment_service, two_hours_before) == 1

        offsets = [c.args[1] for c in mock_notifier.send_reminder.call_args_list]
        assert offsets == [24, 2]

    async def test_missed_offsets_collapse_into_one_reminder(
        self, appointment_service, confirmed_appointment, mock_notifier
    ):
        """Both offsets due at once: send the tightest, record both."""
        now = FIXED_NOW + timedelta(hours=25)  # 1 hour before start

        assert await dispatch_due_reminders(appointment_service, now) == 1

        assert mock_notifier.send_reminder.call_args.args[1] == 2
        stored = await appointment_service.get_appointment(confirmed_appointment.id)
        assert sorted(stored.reminders_sent_hours) == [2, 24]

    async def test_started_appointments_skipped(self, appointment_service, confirmed_appointment, mock_notifier):
        now = FIXED_NOW + timedelta(hours=27)

        assert await dispatch_due_reminders(appointment_service, now) == 0

    async def test_pending_appointments_not_reminded(self, appointment_service, add_schedule, mock_notifier):
        await add_schedule(make_schedule(TECH_A, TOMORROW, shifts=(("10:00", "12:00"),)))
        await appointment_service.create_appointment(
            CUSTOMER, VEHICLE_ID, SERVICE_ID,
            {"date": TOMORROW.isoformat(), "startTime": "11:00", "endTime": "11:30", "technician": TECH_A},
        )

        assert await dispatch_due_reminders(appointment_service, FIXED_NOW + timedelta(hours=20)) == 0

    async def test_all_channels_disabled(self, appointment_service, confirmed_appointment, mock_notifier):
        appointment_service.update_settings({
            "reminderSettings": {"enableEmail": False, "enableSMS": False, "enablePush": False},
        })

        assert await dispatch_due_reminders(appointment_service, FIXED_NOW + timedelta(hours=3)) == 0
        mock_notifier.send_reminder.assert_not_awaited()

    async def test_undelivered_reminder_retried_next_poll(
        self, appointment_service, confirmed_appointment, mock_notifier
    ):
        mock_notifier.send_reminder.return_value = False
        now = FIXED_NOW + timedelta(hours=3)

        with patch("autobay.workers.reminder_dispatch.send_alert", new_callable=AsyncMock) as mock_alert:
            assert await dispatch_due_reminders(appointment_service, now) == 0

        mock_alert.assert_awaited_once()
        mock_notifier.send_reminder.return_value = True
        assert await dispatch_due_reminders(appointment_service, now) == 1


class TestRunReminderDispatch:
    async def test_loop_survives_errors(self, appointment_service):
        """An error in one poll is logged and the loop keeps going."""
        calls = []

        async def flaky_dispatch(service):
            calls.append(service)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        sleep = AsyncMock(side_effect=[None, _StopLoop()])
        with (
            patch("autobay.workers.reminder_dispatch.dispatch_due_reminders", side_effect=flaky_dispatch),
            patch("autobay.workers.reminder_dispatch.asyncio.sleep", sleep),
        ):
            with pytest.raises(_StopLoop):
                await run_reminder_dispatch(appointment_service, poll_interval_seconds=5)

        assert len(calls) == 2
        sleep.assert_awaited_with(5)
