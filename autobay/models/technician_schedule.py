"""
Technician schedule model - one row per technician per date.
Shifts are stored as JSONB: [{"start_time": "10:00", "end_time": "12:00", "status": "available"}].
"""
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from autobay.database import Base


class TechnicianScheduleRecord(Base):
    __tablename__ = "technician_schedules"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    technician_id: Mapped[str] = mapped_column(String(64), nullable=False)
    technician_name: Mapped[Optional[str]] = mapped_column(String(200))
    schedule_date: Mapped[date] = mapped_column(Date, nullable=False)
    shifts: Mapped[list] = mapped_column(JSONB, default=list)
    appointment_ids: Mapped[list] = mapped_column(JSONB, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("technician_id", "schedule_date", name="uq_technician_schedules_tech_date"),
    )

    def __repr__(self) -> str:
        return f"<TechnicianScheduleRecord {self.technician_id} {self.schedule_date}>"
