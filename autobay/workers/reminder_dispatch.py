"""
Reminder dispatch worker - sends appointment reminders at the configured
offsets (reminderSettings.reminderHours, e.g. 24h and 2h before start).

Process:
1. Find confirmed/processed appointments starting within the largest offset
2. For each, pick the offsets that are due and not yet reminded
3. Send one reminder (tightest due offset) and record every due offset as sent
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from autobay.services.appointment_service import AppointmentService
from autobay.utils.alerting import AlertType, send_alert
from autobay.utils.logging import correlation_scope
from autobay.utils.timeofday import slot_start_datetime

logger = logging.getLogger(__name__)


async def dispatch_due_reminders(service: AppointmentService, now: Optional[datetime] = None) -> int:
    """Send reminders that are due at `now`. Returns the number sent."""
    now = (now or service.clock()).astimezone(service.tz)
    reminder_settings = service.get_settings().reminder_settings

    channels = reminder_settings.enabled_channels()
    if not channels or not reminder_settings.reminder_hours:
        logger.debug("Reminders disabled, nothing to dispatch")
        return 0

    horizon = now + timedelta(hours=max(reminder_settings.reminder_hours))
    candidates = await service.appointment_store.list_reminder_candidates(now.date(), horizon.date())

    sent_count = 0
    for appointment in candidates:
        starts_at = slot_start_datetime(
            appointment.time_slot.date, appointment.time_slot.start_time, service.tz
        )
        remaining = starts_at - now
        if remaining <= timedelta(0):
            continue

        due = [
            hours for hours in reminder_settings.reminder_hours
            if remaining <= timedelta(hours=hours) and hours not in appointment.reminders_sent_hours
        ]
        if not due:
            continue

        hours_before = min(due)
        try:
            sent = await service.notifier.send_reminder(appointment, hours_before)
            if not sent:
                await send_alert(
                    AlertType.NOTIFICATION_FAILED,
                    f"Reminder ({hours_before}h) for appointment {appointment.id} was not delivered",
                    severity="warning",
                    extra={"appointment_id": appointment.id},
                )
                continue

            for hours in due:
                await service.appointment_store.mark_reminder_sent(appointment.id, hours)
            sent_count += 1
        except Exception as e:
            logger.error(
                "Failed to send reminder for appointment %s: %s",
                appointment.id, str(e),
                extra={"appointment_id": appointment.id},
            )

    return sent_count


async def run_reminder_dispatch(
    service: Optional[AppointmentService] = None,
    poll_interval_seconds: Optional[int] = None,
):
    """Main loop - check for appointments needing reminders."""
    from autobay.config import get_settings
    from autobay.database import dispose_engine
    from autobay.services.appointment_service import build_service

    service = service or build_service()
    poll_interval_seconds = poll_interval_seconds or get_settings().reminder_poll_interval_seconds
    logger.info("Reminder dispatch worker started (poll every %ds)", poll_interval_seconds)

    try:
        while True:
            with correlation_scope():
                try:
                    sent = await dispatch_due_reminders(service)
                    if sent > 0:
                        logger.info("Sent %d appointment reminders", sent)
                except Exception as e:
                    logger.error("Reminder dispatch error: %s", str(e), exc_info=True)

            await asyncio.sleep(poll_interval_seconds)
    finally:
        await dispose_engine()
