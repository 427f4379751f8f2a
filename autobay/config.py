"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from autobay.schemas.appointment import AppointmentSettings


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_env: str = "development"
    log_level: str = "INFO"
    shop_timezone: str = "UTC"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Booking defaults (seed for AppointmentSettings)
    appointment_working_hours_start: str = "09:00"
    appointment_working_hours_end: str = "18:00"
    appointment_slot_minutes: int = 30
    appointment_max_days_in_advance: int = 30
    appointment_min_hours_in_advance: int = 24
    appointment_auto_confirmation: bool = False
    appointment_max_recommendations: int = 5
    appointment_max_alternative_slots: int = 4

    # Reminders
    reminder_enable_email: bool = True
    reminder_enable_sms: bool = False
    reminder_enable_push: bool = True
    reminder_hours: str = "24,2"  # Comma-separated hours before the appointment
    reminder_poll_interval_seconds: int = 900

    # Outbound hooks
    notification_webhook_url: str = ""
    alert_webhook_url: str = ""  # Discord/Slack webhook URL for critical alerts

    def reminder_hours_list(self) -> list[int]:
        return [int(h) for h in self.reminder_hours.split(",") if h.strip()]

    def appointment_settings(self) -> AppointmentSettings:
        """Build the booking settings record from environment defaults."""
        return AppointmentSettings(
            working_hours={
                "start_time": self.appointment_working_hours_start,
                "end_time": self.appointment_working_hours_end,
            },
            time_slot_duration=self.appointment_slot_minutes,
            max_days_in_advance=self.appointment_max_days_in_advance,
            min_hours_in_advance=self.appointment_min_hours_in_advance,
            auto_confirmation=self.appointment_auto_confirmation,
            reminder_settings={
                "enable_email": self.reminder_enable_email,
                "enable_sms": self.reminder_enable_sms,
                "enable_push": self.reminder_enable_push,
                "reminder_hours": self.reminder_hours_list(),
            },
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
