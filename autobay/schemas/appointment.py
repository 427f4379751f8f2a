"""
Booking records - the explicit, validated shapes that flow through the
slot engine, the stores and the notification senders.

JSON field names are camelCase; Python attributes are snake_case.
Either spelling is accepted on input.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from autobay.utils.timeofday import to_minutes


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _check_hhmm(value: str) -> str:
    to_minutes(value)
    return value


HHMM = Annotated[str, AfterValidator(_check_hhmm)]


class ServiceCategory(str, Enum):
    REGULAR = "regular"
    REPAIR = "repair"
    INSPECTION = "inspection"


class ShiftStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFF = "off"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSED = "processed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TimeSlot(Record):
    date: date
    start_time: HHMM
    end_time: HHMM
    is_available: bool = True
    technician: Optional[str] = None
    appointment_id: Optional[str] = None

    @model_validator(mode="after")
    def _start_before_end(self):
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError(
                f"startTime {self.start_time} must be earlier than endTime {self.end_time}"
            )
        return self

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return to_minutes(self.end_time)

    def label(self) -> str:
        return f"{self.date.isoformat()} {self.start_time}-{self.end_time}"


class Customer(Record):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None

    @field_validator("name", "phone")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class Vehicle(Record):
    id: str
    brand: str
    model: str
    license_plate: str
    owner: Optional[str] = None


class MaintenanceService(Record):
    id: str
    name: str
    description: Optional[str] = None
    category: ServiceCategory
    duration_minutes: int = Field(gt=0)
    base_price: float = Field(ge=0)
    available_technicians: list[str] = Field(default_factory=list)
    required_parts: list[str] = Field(default_factory=list)


class Shift(Record):
    start_time: HHMM
    end_time: HHMM
    status: ShiftStatus = ShiftStatus.AVAILABLE

    @model_validator(mode="after")
    def _start_before_end(self):
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError("shift startTime must be earlier than endTime")
        return self


class TechnicianSchedule(Record):
    technician_id: str
    technician_name: Optional[str] = None
    date: date
    shifts: list[Shift] = Field(default_factory=list)
    appointments: list[str] = Field(default_factory=list)


class Appointment(Record):
    id: str
    customer: Customer
    vehicle_id: str
    service_id: str
    time_slot: TimeSlot
    status: AppointmentStatus = AppointmentStatus.PENDING
    estimated_duration: int = Field(gt=0)
    estimated_cost: float = Field(ge=0)
    notes: Optional[str] = None
    confirmation_sent: bool = False
    reminder_sent: bool = False
    reminders_sent_hours: list[int] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _technician_bound(self):
        if not self.time_slot.technician:
            raise ValueError("timeSlot.technician is required for an appointment")
        return self

    @property
    def technician_id(self) -> str:
        return self.time_slot.technician


class AppointmentRecommendation(Record):
    time_slot: TimeSlot
    score: int = Field(ge=0, le=100)
    technician: str
    technician_name: Optional[str] = None
    reasons: list[str] = Field(default_factory=list)
    alternative_slots: list[TimeSlot] = Field(default_factory=list)


class WorkingHours(Record):
    start_time: HHMM = "09:00"
    end_time: HHMM = "18:00"

    @model_validator(mode="after")
    def _start_before_end(self):
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError("workingHours startTime must be earlier than endTime")
        return self


class ReminderSettings(Record):
    enable_email: bool = True
    enable_sms: bool = Field(default=False, alias="enableSMS")
    enable_push: bool = True
    reminder_hours: list[int] = Field(default_factory=lambda: [24, 2])

    @field_validator("reminder_hours")
    @classmethod
    def _positive_hours(cls, value: list[int]) -> list[int]:
        if any(h <= 0 for h in value):
            raise ValueError("reminderHours must be positive")
        return sorted(set(value), reverse=True)

    def enabled_channels(self) -> list[str]:
        channels = []
        if self.enable_email:
            channels.append("email")
        if self.enable_sms:
            channels.append("sms")
        if self.enable_push:
            channels.append("push")
        return channels


class AppointmentSettings(Record):
    """Process-wide booking configuration. Replaced wholesale, never mutated in place."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid"
    )

    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    time_slot_duration: int = Field(default=30, gt=0)
    max_days_in_advance: int = Field(default=30, ge=0)
    min_hours_in_advance: int = Field(default=24, ge=0)
    auto_confirmation: bool = False
    reminder_settings: ReminderSettings = Field(default_factory=ReminderSettings)
