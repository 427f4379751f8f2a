"""
Appointment model - customer bookings bound to one technician and one slot.
Never hard-deleted; cancellation is a status change.

On PostgreSQL the migration adds an exclusion constraint so two
non-cancelled appointments of one technician can never overlap.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from autobay.database import Base


class AppointmentRecord(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Customer (embedded, the customer directory is external)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(254))

    # External references
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    technician_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Slot, minutes since midnight
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    end_minute: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, confirmed, processed, in_progress, completed, cancelled

    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Notifications
    confirmation_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminders_sent_hours: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("start_minute < end_minute", name="ck_appointments_slot_order"),
        Index("ix_appointments_tech_date", "technician_id", "appointment_date"),
        Index("ix_appointments_status", "status"),
        Index("ix_appointments_date", "appointment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<AppointmentRecord {self.appointment_date} {self.start_minute}-{self.end_minute} "
            f"tech={self.technician_id} status={self.status}>"
        )
