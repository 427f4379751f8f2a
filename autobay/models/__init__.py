"""
Database models - import all models here so Alembic can discover them.
"""
from autobay.models.appointment import AppointmentRecord
from autobay.models.catalog import MaintenanceServiceRecord, VehicleRecord
from autobay.models.technician_schedule import TechnicianScheduleRecord

__all__ = [
    "AppointmentRecord",
    "MaintenanceServiceRecord",
    "VehicleRecord",
    "TechnicianScheduleRecord",
]
