"""
Appointment service for the booking-to-completion lifecycle.

    pending ──approve──> approved ──start──> in_progress ──complete──> completed
       │                    └──────────────complete (admin)─────────────┘
       └──reject──> rejected

Booking runs in one of two modes. auto_approve resolves a free slot (moving
the request later when needed) and stores it approved. manual_review stores
the request pending at the requested time and leaves the slot decision to an
admin. In either mode a slot race lost at the store is re-resolved rather
than surfaced.

Completion writes the appointment and all its tasks in one unit.
"""

import logging
from datetime import date, time
from uuid import UUID

from core.audit import AuditAction, AuditLogger, compute_changes
from core.authorization import Action, require
from core.availability import AutoRescheduleResolver, SlotAvailabilityChecker, reschedule_note
from core.config import BookingMode, SchedulingConfig
from core.errors import (
    AuthorizationDenied, InvalidTransitionError, NoSlotAvailable, NotFoundError, SlotUnavailable,
    ValidationError,
)
from core.event_bus import EventBus
from core.events import (
    AppointmentApproved, AppointmentBooked, AppointmentCompleted, AppointmentRejected,
    AppointmentStarted,
)
from core.models import (
    Appointment, AppointmentCreate, AppointmentStatus, AppointmentUpdate,
    AppointmentWithParticipants, AssignmentRequest, BookingRequest, BookingResult,
    Profile, Role,
)
from core.repositories.base import Store
from core.services.task_service import TaskService
from utils.timezone import format_slot_time, now_utc, parse_slot_time

logger = logging.getLogger(__name__)

_COMPLETABLE_BY_ADMIN = frozenset({AppointmentStatus.APPROVED, AppointmentStatus.IN_PROGRESS})
_COMPLETABLE_BY_TECHNICIAN = frozenset({AppointmentStatus.IN_PROGRESS})


class AppointmentService:
    """Service for appointment operations."""

    def __init__(
        self,
        store: Store,
        audit: AuditLogger,
        bus: EventBus,
        config: SchedulingConfig,
        task_service: TaskService
    ):
        self.appointments = store.appointments
        self.profiles = store.profiles
        self.tasks = store.tasks
        self.audit = audit
        self.bus = bus
        self.config = config
        self.task_service = task_service
        self.checker = SlotAvailabilityChecker(store.appointments)
        self.resolver = AutoRescheduleResolver(self.checker, config)

    # -------------------------------------------------------------------------
    # Booking
    # -------------------------------------------------------------------------

    def book(self, caller: Profile, request: BookingRequest | dict) -> BookingResult:
        """
        Book an appointment for the calling customer.

        Args:
            caller: Customer profile; the appointment is theirs
            request: Parsed booking form, or the raw form dict

        Returns:
            BookingResult with the stored appointment and whether it moved

        Raises:
            AuthorizationDenied: Caller is not a customer
            ValidationError: Bad form input; nothing is written
            NoSlotAvailable: No free slot left that day (auto_approve);
                nothing is written
        """
        if isinstance(request, dict):
            request = BookingRequest.from_form(request)

        require(caller, Action.CREATE_APPOINTMENT)
        requested_time = self._validate_booking(request)
        notes = self._preferred_technician_note(request.preferred_technician_id)

        if self.config.booking_mode == BookingMode.AUTO_APPROVE:
            status = AppointmentStatus.APPROVED
            final_time = self.resolver.resolve(request.appointment_date, requested_time).final_time
        else:
            status = AppointmentStatus.PENDING
            final_time = requested_time

        appointment = None
        conflicts = 0
        while appointment is None:
            was_rescheduled = final_time != requested_time
            admin_notes = " ".join(
                part for part in (reschedule_note(requested_time) if was_rescheduled else None, notes) if part
            )
            data = AppointmentCreate(
                customer_id=caller.user_id,
                vehicle_make=request.vehicle_make.strip(),
                vehicle_model=request.vehicle_model.strip(),
                vehicle_year=request.vehicle_year,
                fault_description=request.fault_description,
                reason_description=request.reason_description,
                appointment_date=request.appointment_date,
                appointment_time=final_time,
                status=status,
                admin_notes=admin_notes or None,
            )
            try:
                appointment = self.appointments.create(data)
            except SlotUnavailable:
                conflicts += 1
                if conflicts > self.config.conflict_retry_limit:
                    raise NoSlotAvailable(request.appointment_date, requested_time)
                logger.warning(
                    "Slot %s %s taken at insert, re-resolving (attempt %d)",
                    request.appointment_date, format_slot_time(final_time), conflicts
                )
                final_time = self.resolver.resolve(
                    request.appointment_date, requested_time, after=final_time
                ).final_time

        self.audit.log_change(
            entity_type="appointment",
            entity_id=appointment.id,
            action=AuditAction.CREATE,
            changes={"created": appointment.model_dump(mode="json")}
        )
        logger.info(
            "Booked appointment %s for %s %s (%s%s)",
            appointment.id, appointment.appointment_date, appointment.display_time,
            appointment.status.value, ", rescheduled" if was_rescheduled else ""
        )
        self.bus.publish(AppointmentBooked.create(appointment, requested_time, was_rescheduled))

        return BookingResult(
            appointment=appointment,
            requested_time=requested_time,
            was_rescheduled=was_rescheduled,
        )

    def _validate_booking(self, request: BookingRequest) -> time:
        self._validate_details(
            request.fault_description, request.reason_description, request.vehicle_year
        )

        if request.appointment_date < now_utc().date():
            raise ValidationError("Please choose a date from today onwards", field="date")

        try:
            requested_time = parse_slot_time(request.requested_time)
        except ValueError as e:
            raise ValidationError("Please select a valid time slot", field="time") from e
        if requested_time not in self.config.slot_times():
            raise ValidationError("Please select a valid time slot", field="time")
        return requested_time

    def _validate_details(self, fault: str | None, reason: str | None, vehicle_year: int | None) -> None:
        if fault is not None and len(fault) > self.config.max_fault_length:
            raise ValidationError(
                f"Vehicle fault description must be {self.config.max_fault_length} characters or less",
                field="fault"
            )
        if reason is not None and len(reason) > self.config.max_reason_length:
            raise ValidationError(
                f"Appointment reason must be {self.config.max_reason_length} characters or less",
                field="reason"
            )
        if vehicle_year is not None:
            latest = now_utc().year + self.config.max_vehicle_year_ahead
            if not self.config.min_vehicle_year <= vehicle_year <= latest:
                raise ValidationError("Please enter a valid vehicle year", field="vehicleYear")

    def _preferred_technician_note(self, technician_id: UUID | None) -> str | None:
        if technician_id is None:
            return None
        technician = self.profiles.get_by_user_id(technician_id)
        if technician is None or not technician.is_active_technician:
            raise ValidationError("Please select an available technician", field="preferredTechnician")
        return f"Preferred technician: {technician.full_name}."

    def check_slot(self, appointment_date: date, appointment_time: time | str) -> bool:
        """Whether a slot is free right now. Advisory; booking re-checks."""
        try:
            return self.checker.is_available(appointment_date, appointment_time)
        except ValueError as e:
            raise ValidationError("Please select a valid time slot", field="time") from e

    def available_slots(self, appointment_date: date) -> list[time]:
        """Configured slots on a day that nobody holds."""
        return [
            slot for slot in self.config.slot_times()
            if self.checker.is_available(appointment_date, slot)
        ]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _get_or_raise(self, appointment_id: UUID) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def get(self, caller: Profile, appointment_id: UUID) -> Appointment:
        """
        Raises:
            NotFoundError, AuthorizationDenied
        """
        appointment = self._get_or_raise(appointment_id)
        require(caller, Action.VIEW_APPOINTMENT, appointment)
        return appointment

    def list_for_caller(self, caller: Profile, limit: int = 50) -> list[Appointment]:
        """
        What the caller's dashboard shows.

        Customers get their own newest first, technicians their assigned ones
        by date, admins everything newest first.
        """
        if caller.is_admin:
            return list(self.appointments.list_with_participants(limit=limit))
        if caller.role == Role.TECHNICIAN:
            self._require_approved_technician(caller, Action.VIEW_APPOINTMENT)
            return self.appointments.list_for_technician(caller.user_id, limit)
        return self.appointments.list_for_customer(caller.user_id, limit)

    def list_with_participants(
        self,
        caller: Profile,
        status: AppointmentStatus | None = None,
        limit: int = 100
    ) -> list[AppointmentWithParticipants]:
        """
        Appointments with customer name, technician name and tasks.

        Scoped to what the caller may read: admins see all, customers their
        own, technicians those assigned to them.
        """
        if caller.is_admin:
            return self.appointments.list_with_participants(status=status, limit=limit)
        if caller.role == Role.TECHNICIAN:
            self._require_approved_technician(caller, Action.VIEW_APPOINTMENT)
            return self.appointments.list_with_participants(
                status=status, technician_id=caller.user_id, limit=limit
            )
        return self.appointments.list_with_participants(
            status=status, customer_id=caller.user_id, limit=limit
        )

    @staticmethod
    def _require_approved_technician(caller: Profile, action: Action) -> None:
        if not caller.is_approved:
            raise AuthorizationDenied(action.value, "technician account is awaiting admin approval")

    # -------------------------------------------------------------------------
    # Edits and transitions
    # -------------------------------------------------------------------------

    def update(self, caller: Profile, appointment_id: UUID, data: AppointmentUpdate) -> Appointment:
        """
        Edit appointment details.

        Customers may edit their own appointment while it is pending; admins
        may edit any appointment.

        Raises:
            NotFoundError, AuthorizationDenied, ValidationError,
            NoSlotAvailable: The new slot is held by another appointment
        """
        current = self._get_or_raise(appointment_id)
        fields = data.model_dump(exclude_unset=True)
        require(caller, Action.UPDATE_APPOINTMENT, current, fields)
        if not fields:
            return current

        self._validate_details(
            fields.get("fault_description"), fields.get("reason_description"), fields.get("vehicle_year")
        )
        if caller.is_customer and fields.get("appointment_date") is not None:
            if fields["appointment_date"] < now_utc().date():
                raise ValidationError("Please choose a date from today onwards", field="date")
        if caller.is_customer and "appointment_time" in fields:
            if fields["appointment_time"] not in self.config.slot_times():
                raise ValidationError("Please select a valid time slot", field="time")

        # A customer's edit must still find the appointment pending at write time
        expected = None if caller.is_admin else frozenset({AppointmentStatus.PENDING})
        try:
            updated = self.appointments.update(appointment_id, fields, expected)
        except SlotUnavailable as e:
            raise NoSlotAvailable(
                e.appointment_date, e.appointment_time,
                "That time slot is already booked. Please choose another time."
            ) from e

        self._audit_update(current, updated)
        return updated

    def approve(
        self,
        caller: Profile,
        appointment_id: UUID,
        assignment: AssignmentRequest | None = None
    ) -> Appointment:
        """
        Approve a pending appointment, optionally assigning a technician in
        the same write.

        Raises:
            NotFoundError, AuthorizationDenied, InvalidTransitionError,
            AssignmentIncomplete, ValidationError (bundled assignment)
        """
        require(caller, Action.APPROVE_ANY)
        current = self._get_or_raise(appointment_id)

        if assignment is not None:
            if assignment.appointment_id != appointment_id:
                raise ValidationError("Assignment is for a different appointment", field="appointment_id")
            if current.status != AppointmentStatus.PENDING:
                raise InvalidTransitionError(
                    "appointment", current.status.value, AppointmentStatus.APPROVED.value
                )
            self.task_service.assign(caller, assignment)
            return self._get_or_raise(appointment_id)

        updated = self.appointments.update(
            appointment_id,
            {"status": AppointmentStatus.APPROVED},
            expected=frozenset({AppointmentStatus.PENDING})
        )
        self._audit_update(current, updated)
        logger.info("Appointment %s approved", appointment_id)
        self.bus.publish(AppointmentApproved.create(updated))
        return updated

    def reject(self, caller: Profile, appointment_id: UUID, reason: str) -> Appointment:
        """
        Reject a pending appointment. Frees its slot.

        Raises:
            ValidationError: Blank reason
            NotFoundError, AuthorizationDenied, InvalidTransitionError
        """
        require(caller, Action.APPROVE_ANY)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", field="rejection_reason")
        if len(reason) > self.config.max_reason_length:
            raise ValidationError(
                f"Rejection reason must be {self.config.max_reason_length} characters or less",
                field="rejection_reason"
            )

        current = self._get_or_raise(appointment_id)
        updated = self.appointments.update(
            appointment_id,
            {"status": AppointmentStatus.REJECTED, "rejection_reason": reason},
            expected=frozenset({AppointmentStatus.PENDING})
        )
        self._audit_update(current, updated)
        logger.info("Appointment %s rejected", appointment_id)
        self.bus.publish(AppointmentRejected.create(updated))
        return updated

    def start(self, caller: Profile, appointment_id: UUID) -> Appointment:
        """
        Assigned technician starts work: approved -> in_progress.

        There is no admin path into in_progress.

        Raises:
            NotFoundError, AuthorizationDenied, InvalidTransitionError
        """
        current = self._get_or_raise(appointment_id)
        if caller.role != Role.TECHNICIAN:
            raise AuthorizationDenied(
                Action.UPDATE_APPOINTMENT_STATUS.value, "only the assigned technician can start work"
            )
        require(caller, Action.UPDATE_APPOINTMENT_STATUS, current)

        updated = self.appointments.update(
            appointment_id,
            {"status": AppointmentStatus.IN_PROGRESS},
            expected=frozenset({AppointmentStatus.APPROVED})
        )
        self._audit_update(current, updated)
        logger.info("Appointment %s started by %s", appointment_id, caller.user_id)
        self.bus.publish(AppointmentStarted.create(updated))
        return updated

    def complete(self, caller: Profile, appointment_id: UUID) -> Appointment:
        """
        Complete an appointment and every one of its tasks.

        The assigned technician completes from in_progress; an admin may also
        complete straight from approved.

        Raises:
            NotFoundError, AuthorizationDenied, InvalidTransitionError
        """
        current = self._get_or_raise(appointment_id)
        require(caller, Action.UPDATE_APPOINTMENT_STATUS, current)
        expected = _COMPLETABLE_BY_ADMIN if caller.is_admin else _COMPLETABLE_BY_TECHNICIAN

        before = {task.id: task.status for task in self.tasks.list_for_appointment(appointment_id)}
        updated, tasks = self.appointments.complete(appointment_id, expected)

        self._audit_update(current, updated)
        for task in tasks:
            previous = before.get(task.id)
            if previous is not None and previous != task.status:
                self.audit.log_change(
                    entity_type="task",
                    entity_id=task.id,
                    action=AuditAction.UPDATE,
                    changes={"status": {"old": previous.value, "new": task.status.value}}
                )

        logger.info("Appointment %s completed with %d task(s)", appointment_id, len(tasks))
        self.bus.publish(AppointmentCompleted.create(updated, tasks))
        return updated

    def _audit_update(self, old: Appointment, new: Appointment) -> None:
        changes = compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="appointment",
                entity_id=new.id,
                action=AuditAction.UPDATE,
                changes=changes
            )

