"""Appointment (service booking) domain models."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.models.task import TaskSummary
from utils.timezone import format_slot_time, parse_slot_time


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Statuses that hold their slot against new bookings.
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.APPROVED})

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.APPROVED, AppointmentStatus.REJECTED}),
    AppointmentStatus.APPROVED: frozenset({AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED}),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.REJECTED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}

_FORM_LABELS = {
    "date": "date",
    "time": "time",
    "vehicleMake": "vehicle make",
    "vehicleModel": "vehicle model",
    "vehicleYear": "vehicle year",
    "fault": "vehicle fault description",
    "reason": "appointment reason",
}


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class BookingRequest(BaseModel):
    """
    Customer booking form.

    Accepts the form's camelCase keys or the field names. Length and year
    limits are configuration, checked by AppointmentService.book.
    """

    appointment_date: date = Field(..., alias="date")
    requested_time: str = Field(..., alias="time", min_length=1)
    vehicle_make: str = Field(..., alias="vehicleMake", min_length=1)
    vehicle_model: str = Field(..., alias="vehicleModel", min_length=1)
    vehicle_year: int = Field(..., alias="vehicleYear")
    fault_description: str = Field(..., alias="fault", min_length=1)
    reason_description: str = Field(..., alias="reason", min_length=1)
    preferred_technician_id: UUID | None = Field(None, alias="preferredTechnician")

    model_config = {"populate_by_name": True}

    @field_validator("preferred_technician_id", mode="before")
    @classmethod
    def _blank_technician(cls, value):
        return _blank_to_none(value)

    @classmethod
    def from_form(cls, data: dict) -> "BookingRequest":
        """
        Parse raw form data.

        Raises:
            ValidationError: Missing required field or wrong type
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first["loc"] else None
            if first["type"] in ("missing", "string_too_short"):
                raise ValidationError("Please fill in all required fields", field=field) from e
            label = _FORM_LABELS.get(field, field)
            raise ValidationError(f"Please enter a valid {label}", field=field) from e


class AppointmentCreate(BaseModel):
    """Row to insert once a booking has been validated and its slot resolved."""

    customer_id: UUID
    vehicle_make: str
    vehicle_model: str
    vehicle_year: int
    fault_description: str = Field(..., max_length=200)
    reason_description: str = Field(..., max_length=500)
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    admin_notes: str | None = None


class AppointmentUpdate(BaseModel):
    """
    Editable appointment fields. All optional.

    Status, technician and rejection reason only change through lifecycle
    transitions, never through a plain update.
    """

    vehicle_make: str | None = Field(None, min_length=1)
    vehicle_model: str | None = Field(None, min_length=1)
    vehicle_year: int | None = None
    fault_description: str | None = Field(None, min_length=1)
    reason_description: str | None = Field(None, min_length=1)
    appointment_date: date | None = None
    appointment_time: time | None = None
    admin_notes: str | None = None
    estimated_duration_hours: float | None = Field(None, gt=0)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _normalize_time(cls, value):
        if value is None:
            return None
        return parse_slot_time(value)


CUSTOMER_EDITABLE_FIELDS = frozenset({
    "vehicle_make", "vehicle_model", "vehicle_year",
    "fault_description", "reason_description",
    "appointment_date", "appointment_time",
})


class Appointment(BaseModel):
    """Full appointment as stored."""

    id: UUID
    customer_id: UUID
    vehicle_make: str
    vehicle_model: str
    vehicle_year: int
    fault_description: str = Field(..., max_length=200)
    reason_description: str = Field(..., max_length=500)
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    technician_id: UUID | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    estimated_duration_hours: float | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _normalize_time(cls, value):
        return parse_slot_time(value)

    @field_validator("admin_notes", "rejection_reason", mode="before")
    @classmethod
    def _blank_notes(cls, value):
        return _blank_to_none(value)

    @property
    def holds_slot(self) -> bool:
        """Whether this appointment blocks its (date, time) for others."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not APPOINTMENT_TRANSITIONS[self.status]

    @property
    def display_time(self) -> str:
        return format_slot_time(self.appointment_time)

    @property
    def vehicle(self) -> str:
        return f"{self.vehicle_year} {self.vehicle_make} {self.vehicle_model}"


class AppointmentWithParticipants(Appointment):
    """Appointment joined with participant names and its task rows."""

    customer_name: str | None = None
    technician_name: str | None = None
    tasks: list[TaskSummary] = Field(default_factory=list)


class BookingResult(BaseModel):
    """Outcome of a booking: the stored appointment plus how its slot was chosen."""

    appointment: Appointment
    requested_time: time
    was_rescheduled: bool
