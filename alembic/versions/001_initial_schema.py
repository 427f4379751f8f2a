"""Initial schema - appointments, technician schedules and the service/vehicle catalog.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Maintenance services
    op.create_table(
        "maintenance_services",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("base_price", sa.Float, nullable=False),
        sa.Column("available_technicians", postgresql.JSONB, server_default="[]"),
        sa.Column("required_parts", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Vehicles
    op.create_table(
        "vehicles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("brand", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("license_plate", sa.String(20), nullable=False, unique=True),
        sa.Column("owner", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Technician schedules
    op.create_table(
        "technician_schedules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("technician_id", sa.String(64), nullable=False),
        sa.Column("technician_name", sa.String(200)),
        sa.Column("schedule_date", sa.Date, nullable=False),
        sa.Column("shifts", postgresql.JSONB, server_default="[]"),
        sa.Column("appointment_ids", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("technician_id", "schedule_date", name="uq_technician_schedules_tech_date"),
    )

    # Appointments
    op.create_table(
        "appointments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_phone", sa.String(40), nullable=False),
        sa.Column("customer_email", sa.String(254)),
        sa.Column("vehicle_id", sa.String(64), nullable=False),
        sa.Column("service_id", sa.String(64), nullable=False),
        sa.Column("technician_id", sa.String(64), nullable=False),
        sa.Column("appointment_date", sa.Date, nullable=False),
        sa.Column("start_minute", sa.Integer, nullable=False),
        sa.Column("end_minute", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("estimated_duration", sa.Integer, nullable=False),
        sa.Column("estimated_cost", sa.Float, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("confirmation_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("reminder_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("reminders_sent_hours", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("start_minute < end_minute", name="ck_appointments_slot_order"),
    )
    op.create_index("ix_appointments_tech_date", "appointments", ["technician_id", "appointment_date"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_date", "appointments", ["appointment_date"])

    # No two live appointments of one technician may overlap
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT ex_appointments_no_overlap
        EXCLUDE USING gist (
            technician_id WITH =,
            appointment_date WITH =,
            int4range(start_minute, end_minute) WITH &&
        )
        WHERE (status <> 'cancelled')
        """
    )


def downgrade() -> None:
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS ex_appointments_no_overlap")
    op.drop_index("ix_appointments_date", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_tech_date", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("technician_schedules")
    op.drop_table("vehicles")
    op.drop_table("maintenance_services")
