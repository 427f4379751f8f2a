"""
Operational alerts for booking-core failures that need a human.

An alert is always logged and, when ALERT_WEBHOOK_URL is set, posted to a
Discord/Slack webhook. Each alert type has a cooldown held in process memory
so a flapping schedule store or notifier cannot flood the channel.
"""
import logging
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ALERT_COOLDOWN_SECONDS = 300

# Undelivered notifications tend to come in bursts when the sender is down
ALERT_COOLDOWN_OVERRIDES: dict[str, int] = {
    "notification_failed": 900,
}

WEBHOOK_TIMEOUT_SECONDS = 5.0

_LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
}

_local_cooldowns: dict[str, float] = {}  # alert_type -> monotonic expiry


class AlertType:
    SCHEDULE_DATA_UNAVAILABLE = "schedule_data_unavailable"
    SCHEDULE_WRITEBACK_FAILED = "schedule_writeback_failed"
    NOTIFICATION_FAILED = "notification_failed"


def _get_cooldown_seconds(alert_type: str) -> int:
    return ALERT_COOLDOWN_OVERRIDES.get(alert_type, ALERT_COOLDOWN_SECONDS)


def _acquire_cooldown(alert_type: str) -> bool:
    """True if the alert may go out now; starts the cooldown window when it does."""
    now = time.monotonic()
    if now < _local_cooldowns.get(alert_type, 0.0):
        return False
    _local_cooldowns[alert_type] = now + _get_cooldown_seconds(alert_type)
    return True


def reset_cooldowns() -> None:
    _local_cooldowns.clear()


def _webhook_content(
    alert_type: str,
    message: str,
    severity: str,
    correlation_id: Optional[str],
    extra: Optional[dict],
) -> str:
    lines = [f"[{severity.upper()}] **{alert_type}**", message]
    if correlation_id:
        lines.append(f"`correlation_id: {correlation_id}`")
    lines.extend(f"`{key}: {val}`" for key, val in (extra or {}).items())
    return "\n".join(lines)


async def send_alert(
    alert_type: str,
    message: str,
    correlation_id: Optional[str] = None,
    severity: str = "error",
    extra: Optional[dict] = None,
) -> None:
    """
    Log the alert and post it to the alert webhook, once per cooldown window.

    Never raises: callers are in the middle of a booking or a reminder pass
    and must carry on whatever happens to the alert itself.
    """
    if not _acquire_cooldown(alert_type):
        logger.debug("Alert %s suppressed by cooldown", alert_type)
        return

    from autobay.utils.logging import get_correlation_id
    cid = correlation_id or get_correlation_id()

    logger.log(
        _LOG_LEVELS.get(severity, logging.ERROR),
        "ALERT [%s]: %s",
        alert_type, message,
        extra={"error_code": alert_type},
    )

    await _send_webhook_alert(_webhook_content(alert_type, message, severity, cid, extra))


async def _send_webhook_alert(content: str) -> None:
    try:
        from autobay.config import get_settings
        webhook_url = get_settings().alert_webhook_url
        if not webhook_url:
            return

        async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
            await client.post(webhook_url, json={"content": content})
    except Exception as e:
        logger.warning("Failed to send webhook alert: %s", str(e))
