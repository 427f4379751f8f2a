"""
Notification senders - appointment confirmations and reminders.
Delivery itself (email, SMS, push) happens downstream of the webhook;
failures are logged and reported as False, never raised.
"""
import logging
from typing import Optional, Sequence

import httpx

from autobay.integrations.base import NotificationSender
from autobay.schemas.appointment import Appointment

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 5.0


def mask_phone(phone: str) -> str:
    """Mask phone number for logging - show first 6 digits only."""
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone


def confirmation_text(appointment: Appointment) -> str:
    slot = appointment.time_slot
    return (
        f"Hi {appointment.customer.name}, your appointment on {slot.date.isoformat()} "
        f"at {slot.start_time} is confirmed."
    )


def reminder_text(appointment: Appointment, hours_before: int) -> str:
    slot = appointment.time_slot
    return (
        f"Reminder: your appointment is in {hours_before} hours "
        f"({slot.date.isoformat()} at {slot.start_time})."
    )


class LoggingNotificationSender(NotificationSender):
    """Records notifications in the log only. Default when no webhook is configured."""

    async def send_confirmation(self, appointment: Appointment) -> bool:
        logger.info(
            "Confirmation for %s to %s: %s",
            appointment.id, mask_phone(appointment.customer.phone), confirmation_text(appointment),
            extra={"appointment_id": appointment.id},
        )
        return True

    async def send_reminder(self, appointment: Appointment, hours_before: int) -> bool:
        logger.info(
            "Reminder (%dh) for %s to %s",
            hours_before, appointment.id, mask_phone(appointment.customer.phone),
            extra={"appointment_id": appointment.id},
        )
        return True


class WebhookNotificationSender(NotificationSender):
    """POSTs notification payloads to a delivery webhook."""

    def __init__(
        self,
        webhook_url: str,
        channels: Sequence[str] = ("email",),
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.channels = list(channels)
        self._client = client

    async def _post(self, payload: dict) -> bool:
        try:
            if self._client is not None:
                response = await self._client.post(self.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(
                "Failed to send %s notification for %s: %s",
                payload.get("type"), payload.get("appointmentId"), str(e),
                extra={"appointment_id": payload.get("appointmentId"), "error_code": "notification_failed"},
            )
            return False

    async def send_confirmation(self, appointment: Appointment) -> bool:
        return await self._post({
            "type": "confirmation",
            "appointmentId": appointment.id,
            "channels": self.channels,
            "customer": appointment.customer.to_json_dict(),
            "message": confirmation_text(appointment),
            "appointment": appointment.to_json_dict(),
        })

    async def send_reminder(self, appointment: Appointment, hours_before: int) -> bool:
        return await self._post({
            "type": "reminder",
            "appointmentId": appointment.id,
            "hoursBefore": hours_before,
            "channels": self.channels,
            "customer": appointment.customer.to_json_dict(),
            "message": reminder_text(appointment, hours_before),
            "appointment": appointment.to_json_dict(),
        })
