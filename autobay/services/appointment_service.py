"""
Appointment service - the booking core's public surface.

Holds the current AppointmentSettings and wires the recommendation engine,
the lifecycle and the store adapters together. Constructed explicitly and
passed to callers; there is no process-wide instance.
"""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Iterable, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ValidationError

from autobay.errors import BookingValidationError, NotFoundError
from autobay.integrations.base import (
    AppointmentStore,
    NotificationSender,
    ServiceCatalog,
    TechnicianScheduleStore,
    VehicleCatalog,
)
from autobay.schemas.appointment import (
    Appointment,
    AppointmentRecommendation,
    AppointmentSettings,
    AppointmentStatus,
    Customer,
    Shift,
    TechnicianSchedule,
    TimeSlot,
)
from autobay.services.availability import TechnicianAvailabilityIndex
from autobay.services.calendar import is_on_grid
from autobay.services.lifecycle import AppointmentLifecycle
from autobay.services.recommendations import RecommendationEngine
from autobay.utils.logging import ensure_correlation_id
from autobay.utils.timeofday import slot_start_datetime

logger = logging.getLogger(__name__)


def _field_names(model_cls: type[BaseModel]) -> dict[str, str]:
    """Accepted input key (alias or attribute name) -> attribute name."""
    names = {}
    for name, info in model_cls.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def _normalize_keys(model_cls: type[BaseModel], partial: dict, prefix: str = "") -> dict:
    known = _field_names(model_cls)
    normalized = {}
    for key, value in partial.items():
        if key not in known:
            raise BookingValidationError(f"Unknown setting {prefix}{key}", field=f"{prefix}{key}")
        normalized[known[key]] = value
    return normalized


def _first_error_field(e: ValidationError) -> Optional[str]:
    errors = e.errors()
    if not errors:
        return None
    return ".".join(str(part) for part in errors[0]["loc"]) or None


class AppointmentService:
    def __init__(
        self,
        settings: AppointmentSettings,
        service_catalog: ServiceCatalog,
        vehicle_catalog: VehicleCatalog,
        schedule_store: TechnicianScheduleStore,
        appointment_store: AppointmentStore,
        notifier: NotificationSender,
        engine: Optional[RecommendationEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self._settings = settings
        self.service_catalog = service_catalog
        self.vehicle_catalog = vehicle_catalog
        self.schedule_store = schedule_store
        self.appointment_store = appointment_store
        self.notifier = notifier
        self.tz = tz or timezone.utc
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.engine = engine or RecommendationEngine(
            schedule_store, appointment_store, clock=self.clock, tz=self.tz
        )
        self.lifecycle = AppointmentLifecycle(appointment_store, schedule_store, notifier)

    def _now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def recommend(
        self,
        service_id: str,
        preferred_date: Optional[date] = None,
        preferred_time: Optional[str] = None,
    ) -> list[AppointmentRecommendation]:
        ensure_correlation_id()
        service = await self.service_catalog.get(service_id)
        if service is None:
            raise NotFoundError("service", service_id)
        return await self.engine.recommend(
            service, self._settings, preferred_date=preferred_date, preferred_time=preferred_time
        )

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def create_appointment(
        self,
        customer: Union[Customer, dict],
        vehicle_id: str,
        service_id: str,
        time_slot: Union[TimeSlot, dict],
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Book a slot for a customer.

        The appointment is stored as pending through a conditional insert, so two
        callers racing for the same technician slot get exactly one success and
        one SlotConflictError. With autoConfirmation it is confirmed right away.
        """
        ensure_correlation_id()
        settings = self._settings

        try:
            customer = Customer.model_validate(customer)
            time_slot = TimeSlot.model_validate(time_slot)
        except ValidationError as e:
            raise BookingValidationError(str(e), field=_first_error_field(e)) from None

        vehicle = await self.vehicle_catalog.get(vehicle_id)
        if vehicle is None:
            raise NotFoundError("vehicle", vehicle_id)
        service = await self.service_catalog.get(service_id)
        if service is None:
            raise NotFoundError("service", service_id)

        technician_id = time_slot.technician
        if not technician_id:
            raise BookingValidationError("A technician must be chosen for the slot", field="timeSlot.technician")
        if technician_id not in service.available_technicians:
            raise BookingValidationError(
                f"Technician {technician_id} does not perform service {service.id}",
                field="timeSlot.technician",
            )

        self._check_bookable_window(time_slot, settings)

        index = await TechnicianAvailabilityIndex.load(
            self.schedule_store, time_slot.date, time_slot.date, [technician_id]
        )
        if not index.is_technician_available(technician_id, time_slot):
            raise BookingValidationError(
                f"Technician {technician_id} is not on shift at {time_slot.label()}",
                field="timeSlot",
            )

        appointment_id = str(uuid.uuid4())
        now = self._now()
        appointment = Appointment(
            id=appointment_id,
            customer=customer,
            vehicle_id=vehicle.id,
            service_id=service.id,
            time_slot=time_slot.model_copy(update={"is_available": False, "appointment_id": appointment_id}),
            status=AppointmentStatus.PENDING,
            estimated_duration=service.duration_minutes,
            estimated_cost=service.base_price,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

        stored = await self.appointment_store.insert_if_free(appointment)
        logger.info(
            "Appointment %s created for service %s at %s",
            stored.id, service.id, time_slot.label(),
            extra={
                "appointment_id": stored.id,
                "service_id": service.id,
                "technician_id": technician_id,
                "outcome": "created",
            },
        )

        if settings.auto_confirmation:
            return await self.lifecycle.confirm(stored)
        return stored

    def _check_bookable_window(self, slot: TimeSlot, settings: AppointmentSettings) -> None:
        if not is_on_grid(slot, settings):
            raise BookingValidationError(
                f"Slot {slot.label()} is not on the {settings.time_slot_duration}-minute grid "
                f"of working hours {settings.working_hours.start_time}-{settings.working_hours.end_time}",
                field="timeSlot",
            )

        now = self._now()
        earliest = now + timedelta(hours=settings.min_hours_in_advance)
        if slot_start_datetime(slot.date, slot.start_time, self.tz) < earliest:
            raise BookingValidationError(
                f"Slot {slot.label()} must be at least {settings.min_hours_in_advance} hours ahead",
                field="timeSlot",
            )

        latest_date = now.date() + timedelta(days=settings.max_days_in_advance)
        if slot.date > latest_date:
            raise BookingValidationError(
                f"Slot {slot.label()} is more than {settings.max_days_in_advance} days ahead",
                field="timeSlot",
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def update_status(
        self,
        appointment_id: str,
        new_status: Union[AppointmentStatus, str],
    ) -> Appointment:
        ensure_correlation_id()
        try:
            requested = AppointmentStatus(new_status)
        except ValueError:
            raise BookingValidationError(f"Unknown status {new_status!r}", field="status") from None
        return await self.lifecycle.transition(appointment_id, requested)

    async def cancel_appointment(self, appointment_id: str) -> Appointment:
        ensure_correlation_id()
        return await self.lifecycle.transition(appointment_id, AppointmentStatus.CANCELLED)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        ensure_correlation_id()
        appointment = await self.appointment_store.get(appointment_id)
        if appointment is None:
            raise NotFoundError("appointment", appointment_id)
        return appointment

    async def list_upcoming(self, limit: int = 5) -> list[Appointment]:
        """Next non-cancelled appointments from today, earliest first."""
        ensure_correlation_id()
        return await self.appointment_store.list_upcoming(self._now().date(), limit=limit)

    async def update_technician_schedule(
        self,
        technician_id: str,
        schedule_date: date,
        shifts: Iterable[Union[Shift, dict]],
        technician_name: Optional[str] = None,
    ) -> TechnicianSchedule:
        ensure_correlation_id()
        try:
            schedule = TechnicianSchedule(
                technician_id=technician_id,
                technician_name=technician_name,
                date=schedule_date,
                shifts=[Shift.model_validate(s) for s in shifts],
            )
        except ValidationError as e:
            raise BookingValidationError(str(e), field="shifts") from None

        saved = await self.schedule_store.upsert(schedule)
        logger.info(
            "Schedule for technician %s on %s updated (%d shifts)",
            technician_id, schedule_date, len(saved.shifts),
            extra={"technician_id": technician_id},
        )
        return saved

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> AppointmentSettings:
        return self._settings.model_copy(deep=True)

    def update_settings(self, partial: dict[str, Any]) -> AppointmentSettings:
        """
        Merge recognized keys into the current settings and swap in the result.
        Either camelCase or snake_case keys are accepted. Nested records
        (workingHours, reminderSettings) are merged key by key.
        """
        current = self._settings
        updates = _normalize_keys(AppointmentSettings, partial)

        merged = current.model_dump()
        for name, value in updates.items():
            nested = getattr(current, name)
            if isinstance(nested, BaseModel) and isinstance(value, dict):
                value = {**nested.model_dump(), **_normalize_keys(type(nested), value, prefix=f"{name}.")}
            merged[name] = value

        try:
            new_settings = AppointmentSettings.model_validate(merged)
        except ValidationError as e:
            raise BookingValidationError(str(e), field=_first_error_field(e)) from None

        self._settings = new_settings
        logger.info("Appointment settings updated: %s", ", ".join(sorted(updates)))
        return self.get_settings()


def build_service(config=None) -> AppointmentService:
    """Assemble an AppointmentService over the SQL stores from application config."""
    from autobay.config import get_settings
    from autobay.database import get_session_factory
    from autobay.integrations.sql_stores import (
        SqlAppointmentStore,
        SqlServiceCatalog,
        SqlTechnicianScheduleStore,
        SqlVehicleCatalog,
    )
    from autobay.services.notifications import LoggingNotificationSender, WebhookNotificationSender

    config = config or get_settings()
    session_factory = get_session_factory()
    settings = config.appointment_settings()
    tz = ZoneInfo(config.shop_timezone)

    if config.notification_webhook_url:
        notifier = WebhookNotificationSender(
            config.notification_webhook_url,
            channels=settings.reminder_settings.enabled_channels(),
        )
    else:
        notifier = LoggingNotificationSender()

    schedule_store = SqlTechnicianScheduleStore(session_factory)
    appointment_store = SqlAppointmentStore(session_factory)
    engine = RecommendationEngine(
        schedule_store,
        appointment_store,
        tz=tz,
        max_recommendations=config.appointment_max_recommendations,
        max_alternative_slots=config.appointment_max_alternative_slots,
    )
    return AppointmentService(
        settings=settings,
        service_catalog=SqlServiceCatalog(session_factory),
        vehicle_catalog=SqlVehicleCatalog(session_factory),
        schedule_store=schedule_store,
        appointment_store=appointment_store,
        notifier=notifier,
        engine=engine,
        tz=tz,
    )
