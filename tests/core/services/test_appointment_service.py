"""Tests for AppointmentService."""

from datetime import time, timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest

from core.errors import (
    AuthorizationDenied, InvalidTransitionError, NoSlotAvailable, NotFoundError, SlotUnavailable,
    ValidationError,
)
from core.models import (
    AppointmentStatus, AppointmentUpdate, AssignmentRequest, TaskStatus,
)
from utils.timezone import now_utc
from utils.user_context import acting_as, current_user_id


def _book(services, caller, form):
    with acting_as(caller.user_id):
        return services.appointments.book(caller, form)


def _assign(services, admin, appointment_id, technician, hours=1.0):
    with acting_as(admin.user_id):
        return services.tasks.assign(admin, AssignmentRequest(
            appointment_id=appointment_id,
            technician_id=technician.user_id,
            task_description="Inspect brakes",
            estimated_duration_hours=hours,
        ))


class TestBookAutoApprove:
    """Default booking mode."""

    def test_free_slot_is_confirmed_as_requested(self, services, customer, booking_form):
        """Approved at the requested time, not rescheduled."""
        result = _book(services, customer, booking_form)

        assert result.appointment.status == AppointmentStatus.APPROVED
        assert result.appointment.appointment_time == time(9, 0)
        assert result.appointment.customer_id == customer.user_id
        assert result.was_rescheduled is False
        assert result.appointment.admin_notes is None

    def test_taken_slot_is_rescheduled_forward(self, services, customer, customer_b, booking_form):
        """Second booking at 9:00 lands at 9:30 with a note."""
        _book(services, customer, booking_form)
        result = _book(services, customer_b, booking_form)

        assert result.was_rescheduled is True
        assert result.requested_time == time(9, 0)
        assert result.appointment.appointment_time == time(9, 30)
        assert result.appointment.admin_notes == (
            "Original requested time: 9:00 AM. Automatically rescheduled due to time conflict."
        )

    def test_late_day_full_raises(self, services, customer, customer_b, booking_form):
        """A taken 4:30 has nowhere to go before closing."""
        form = {**booking_form, "time": "4:00 PM"}
        _book(services, customer, form)
        _book(services, customer, form)  # lands at 4:30

        with pytest.raises(NoSlotAvailable, match="No available time slots for this date"):
            _book(services, customer_b, {**booking_form, "time": "4:00 PM"})

    def test_nothing_written_when_no_slot(self, store, services, customer, customer_b, booking_form):
        """A failed booking leaves no row behind."""
        form = {**booking_form, "time": "4:00 PM"}
        _book(services, customer, form)
        _book(services, customer, form)
        with pytest.raises(NoSlotAvailable):
            _book(services, customer_b, form)

        assert store.appointments.list_for_customer(customer_b.user_id) == []

    def test_preferred_technician_noted(self, services, customer, technician, booking_form):
        """Preference is recorded for the admin."""
        form = {**booking_form, "preferredTechnician": str(technician.user_id)}
        result = _book(services, customer, form)

        assert result.appointment.admin_notes == "Preferred technician: Toni Technician."
        assert result.appointment.technician_id is None

    def test_audited_and_attributed(self, services, customer, booking_form):
        """Create is audited against the customer."""
        appointment = _book(services, customer, booking_form).appointment

        history = services.audit.get_entity_history("appointment", appointment.id)
        assert history[0]["action"] == "create"
        assert history[0]["user_id"] == customer.user_id


class TestBookManualReview:
    """manual_review mode."""

    def test_stored_pending_at_requested_time(self, pending):
        """No resolution, pending status."""
        assert pending.status == AppointmentStatus.PENDING
        assert pending.appointment_time == time(9, 0)

    def test_pending_holds_slot(self, manual_services, customer_b, pending, booking_form):
        """A second pending request for the slot is moved forward."""
        result = _book(manual_services, customer_b, booking_form)

        assert result.appointment.status == AppointmentStatus.PENDING
        assert result.appointment.appointment_time == time(9, 30)
        assert result.was_rescheduled is True


class TestBookRace:
    """Slot lost between resolution and insert."""

    def test_retries_through_resolver(self, services, customer, booking_form):
        """A SlotUnavailable from the store is re-resolved once."""
        real_create = services.appointments.appointments.create
        calls = []

        def flaky_create(data):
            calls.append(data.appointment_time)
            if len(calls) == 1:
                raise SlotUnavailable(data.appointment_date, data.appointment_time)
            return real_create(data)

        with patch.object(services.appointments.appointments, "create", side_effect=flaky_create):
            result = _book(services, customer, booking_form)

        assert calls == [time(9, 0), time(9, 30)]
        assert result.appointment.status == AppointmentStatus.APPROVED

    def test_gives_up_after_retry_limit(self, services, customer, booking_form):
        """Persistent conflicts end in NoSlotAvailable."""
        def always_taken(data):
            raise SlotUnavailable(data.appointment_date, data.appointment_time)

        with patch.object(services.appointments.appointments, "create", side_effect=always_taken) as create:
            with pytest.raises(NoSlotAvailable):
                _book(services, customer, booking_form)

        assert create.call_count == services.appointments.config.conflict_retry_limit + 1

    def test_slot_hidden_from_caller_is_skipped(self, store, services, customer, customer_b, booking_form):
        """A check that only sees the caller's own bookings still lands the next slot."""
        _book(services, customer, booking_form)

        def own_bookings_only(day, slot):
            return any(
                a.appointment_date == day and a.appointment_time == slot
                and a.status in (AppointmentStatus.PENDING, AppointmentStatus.APPROVED)
                for a in store.appointments.list_for_customer(current_user_id())
            )

        with patch.object(store.appointments, "slot_taken", side_effect=own_bookings_only):
            result = _book(services, customer_b, booking_form)

        assert result.appointment.appointment_time == time(9, 30)
        assert result.was_rescheduled is True
        assert result.appointment.admin_notes.startswith("Original requested time: 9:00 AM.")


class TestBookValidation:
    """Form checks, in order, before any write."""

    def test_only_customers(self, services, admin, booking_form):
        """Admins don't book."""
        with pytest.raises(AuthorizationDenied):
            _book(services, admin, booking_form)

    def test_fault_too_long(self, services, customer, booking_form):
        """201-character fault is refused."""
        with pytest.raises(ValidationError, match="200 characters or less") as exc:
            _book(services, customer, {**booking_form, "fault": "x" * 201})
        assert exc.value.field == "fault"

    def test_fault_at_limit_ok(self, services, customer, booking_form):
        """Exactly 200 characters is allowed."""
        result = _book(services, customer, {**booking_form, "fault": "x" * 200})
        assert len(result.appointment.fault_description) == 200

    def test_reason_too_long(self, services, customer, booking_form):
        """501-character reason is refused."""
        with pytest.raises(ValidationError, match="500 characters or less"):
            _book(services, customer, {**booking_form, "reason": "x" * 501})

    def test_fault_checked_before_reason(self, services, customer, booking_form):
        """Both too long reports the fault."""
        with pytest.raises(ValidationError) as exc:
            _book(services, customer, {**booking_form, "fault": "x" * 201, "reason": "x" * 501})
        assert exc.value.field == "fault"

    @pytest.mark.parametrize("year", [1800, now_utc().year + 5])
    def test_bad_year(self, services, customer, booking_form, year):
        """Year outside the accepted range."""
        with pytest.raises(ValidationError, match="valid vehicle year"):
            _book(services, customer, {**booking_form, "vehicleYear": year})

    def test_past_date(self, services, customer, booking_form):
        """Yesterday is refused."""
        yesterday = (now_utc().date() - timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError, match="from today onwards"):
            _book(services, customer, {**booking_form, "date": yesterday})

    def test_time_not_in_slot_list(self, services, customer, booking_form):
        """Noon is not offered."""
        with pytest.raises(ValidationError, match="valid time slot"):
            _book(services, customer, {**booking_form, "time": "12:00 PM"})

    def test_unapproved_preferred_technician(self, services, customer, pending_technician, booking_form):
        """Only approved technicians may be preferred."""
        form = {**booking_form, "preferredTechnician": str(pending_technician.user_id)}
        with pytest.raises(ValidationError, match="available technician"):
            _book(services, customer, form)

    def test_missing_field(self, services, customer, booking_form):
        """Blank make is a required-field error."""
        with pytest.raises(ValidationError, match="fill in all required fields"):
            _book(services, customer, {**booking_form, "vehicleMake": ""})


class TestSlots:
    """Availability queries."""

    def test_check_slot(self, services, booked):
        """Booked slot is taken, the next is free."""
        assert services.appointments.check_slot(booked.appointment_date, "9:00 AM") is False
        assert services.appointments.check_slot(booked.appointment_date, "10:00 AM") is True

    def test_check_slot_bad_time(self, services, future_date):
        """Garbage time is a validation error."""
        with pytest.raises(ValidationError):
            services.appointments.check_slot(future_date, "teatime")

    def test_available_slots_excludes_taken(self, services, booked):
        """Configured slots minus held ones."""
        available = services.appointments.available_slots(booked.appointment_date)
        assert time(9, 0) not in available
        assert len(available) == 8


class TestReads:
    """get and the dashboard lists."""

    def test_owner_reads(self, services, customer, booked):
        """The customer can read their own."""
        assert services.appointments.get(customer, booked.id).id == booked.id

    def test_other_customer_denied(self, services, customer_b, booked):
        """Another customer can't."""
        with pytest.raises(AuthorizationDenied):
            services.appointments.get(customer_b, booked.id)

    def test_missing(self, services, admin):
        """Unknown id is NotFoundError."""
        with pytest.raises(NotFoundError):
            services.appointments.get(admin, uuid4())

    def test_list_scoped_by_role(self, services, admin, customer, customer_b, technician, booked, booking_form):
        """Admin sees all, customers their own, technicians their assigned."""
        _book(services, customer_b, booking_form)
        _assign(services, admin, booked.id, technician)

        assert len(services.appointments.list_with_participants(admin)) == 2
        mine = services.appointments.list_with_participants(customer)
        assert [a.id for a in mine] == [booked.id]
        assigned = services.appointments.list_with_participants(technician)
        assert [a.id for a in assigned] == [booked.id]
        assert assigned[0].technician_name == "Toni Technician"
        assert assigned[0].customer_name == "Casey Customer"
        assert len(assigned[0].tasks) == 1

    def test_pending_technician_cannot_list(self, services, pending_technician):
        """Unapproved technicians see nothing."""
        with pytest.raises(AuthorizationDenied, match="awaiting admin approval"):
            services.appointments.list_with_participants(pending_technician)

    def test_list_for_caller(self, services, customer, booked):
        """Customer dashboard."""
        assert [a.id for a in services.appointments.list_for_caller(customer)] == [booked.id]


class TestUpdate:
    """Edits."""

    def test_customer_edits_pending(self, services, customer, pending):
        """Owner may change vehicle details and time while pending."""
        with acting_as(customer.user_id):
            updated = services.appointments.update(
                customer, pending.id, AppointmentUpdate(vehicle_model="Camry", appointment_time="10:00 AM")
            )

        assert updated.vehicle_model == "Camry"
        assert updated.appointment_time == time(10, 0)

    def test_customer_cannot_edit_approved(self, services, customer, booked):
        """Approved is locked for customers."""
        with pytest.raises(AuthorizationDenied):
            services.appointments.update(customer, booked.id, AppointmentUpdate(vehicle_model="Camry"))

    def test_customer_cannot_edit_rejected(self, services, admin, customer, pending):
        """Rejected is locked for customers too."""
        with acting_as(admin.user_id):
            services.appointments.reject(admin, pending.id, "No parts")

        with pytest.raises(AuthorizationDenied):
            services.appointments.update(customer, pending.id, AppointmentUpdate(vehicle_model="Camry"))

    def test_customer_cannot_move_to_past_date(self, services, customer, pending):
        """Edits follow the booking rule on dates."""
        yesterday = now_utc().date() - timedelta(days=1)

        with pytest.raises(ValidationError, match="from today onwards") as exc:
            services.appointments.update(customer, pending.id, AppointmentUpdate(appointment_date=yesterday))

        assert exc.value.field == "date"
        assert services.appointments.appointments.get(pending.id).appointment_date == pending.appointment_date

    def test_customer_off_list_time(self, services, customer, pending):
        """Customers stick to the slot list."""
        with pytest.raises(ValidationError, match="valid time slot"):
            services.appointments.update(customer, pending.id, AppointmentUpdate(appointment_time="12:30 PM"))

    def test_moving_onto_taken_slot(self, services, customer, customer_b, pending, manual_services, booking_form):
        """Edit into a held slot is refused."""
        other = _book(manual_services, customer_b, {**booking_form, "time": "10:00 AM"}).appointment
        with pytest.raises(NoSlotAvailable, match="already booked"):
            services.appointments.update(
                customer, pending.id, AppointmentUpdate(appointment_time=other.appointment_time)
            )

    def test_admin_edits_notes(self, services, admin, booked):
        """Admins may write admin notes on any appointment."""
        with acting_as(admin.user_id):
            updated = services.appointments.update(admin, booked.id, AppointmentUpdate(admin_notes="Loaner car"))
        assert updated.admin_notes == "Loaner car"

    def test_empty_update_is_noop(self, services, admin, booked):
        """Nothing set, nothing written."""
        assert services.appointments.update(admin, booked.id, AppointmentUpdate()) == booked


class TestApproveReject:
    """Admin decisions on pending appointments."""

    def test_approve(self, services, admin, pending):
        """Pending becomes approved."""
        with acting_as(admin.user_id):
            assert services.appointments.approve(admin, pending.id).status == AppointmentStatus.APPROVED

    def test_approve_twice_fails(self, services, admin, pending):
        """Approved can't be approved again."""
        with acting_as(admin.user_id):
            services.appointments.approve(admin, pending.id)
            with pytest.raises(InvalidTransitionError):
                services.appointments.approve(admin, pending.id)

    def test_approve_with_assignment(self, services, admin, technician, pending):
        """Bundled assignment approves and assigns in one go."""
        request = AssignmentRequest(
            appointment_id=pending.id, technician_id=technician.user_id,
            task_description="Replace pads", estimated_duration_hours=2,
        )
        with acting_as(admin.user_id):
            approved = services.appointments.approve(admin, pending.id, request)

        assert approved.status == AppointmentStatus.APPROVED
        assert approved.technician_id == technician.user_id
        assert approved.estimated_duration_hours == 2

    def test_customer_cannot_approve(self, services, customer, pending):
        """Admin only."""
        with pytest.raises(AuthorizationDenied):
            services.appointments.approve(customer, pending.id)

    def test_reject_frees_slot(self, services, admin, pending):
        """Rejected appointments keep the reason and release the slot."""
        with acting_as(admin.user_id):
            rejected = services.appointments.reject(admin, pending.id, "  No parts  ")

        assert rejected.status == AppointmentStatus.REJECTED
        assert rejected.rejection_reason == "No parts"
        assert services.appointments.check_slot(pending.appointment_date, pending.appointment_time)

    def test_reject_needs_reason(self, services, admin, pending):
        """Blank reason is refused."""
        with pytest.raises(ValidationError, match="rejection reason is required"):
            services.appointments.reject(admin, pending.id, "   ")

    def test_reject_approved_fails(self, services, admin, booked):
        """Only pending can be rejected."""
        with pytest.raises(InvalidTransitionError):
            services.appointments.reject(admin, booked.id, "Too late")


class TestStartComplete:
    """Work in progress and completion."""

    def test_assigned_technician_starts(self, services, admin, technician, booked):
        """approved -> in_progress."""
        _assign(services, admin, booked.id, technician)
        with acting_as(technician.user_id):
            started = services.appointments.start(technician, booked.id)
        assert started.status == AppointmentStatus.IN_PROGRESS

    def test_admin_cannot_start(self, services, admin, technician, booked):
        """No admin path into in_progress."""
        _assign(services, admin, booked.id, technician)
        with pytest.raises(AuthorizationDenied, match="only the assigned technician"):
            services.appointments.start(admin, booked.id)

    def test_other_technician_cannot_start(self, services, admin, technician, technician_b, booked):
        """Must be the assigned technician."""
        _assign(services, admin, booked.id, technician)
        with pytest.raises(AuthorizationDenied):
            services.appointments.start(technician_b, booked.id)

    def test_technician_completes_cascades_tasks(self, services, admin, technician, booked):
        """Completion closes every task."""
        _assign(services, admin, booked.id, technician)
        _assign(services, admin, booked.id, technician)
        with acting_as(technician.user_id):
            services.appointments.start(technician, booked.id)
            completed = services.appointments.complete(technician, booked.id)

        assert completed.status == AppointmentStatus.COMPLETED
        tasks = services.tasks.list_for_appointment(admin, booked.id)
        assert {t.status for t in tasks} == {TaskStatus.COMPLETED}

    def test_technician_cannot_complete_from_approved(self, services, admin, technician, booked):
        """Technicians must start first."""
        _assign(services, admin, booked.id, technician)
        with pytest.raises(InvalidTransitionError):
            services.appointments.complete(technician, booked.id)

    def test_admin_completes_from_approved(self, services, admin, technician, booked):
        """Admin shortcut skips in_progress."""
        task = _assign(services, admin, booked.id, technician)
        with acting_as(admin.user_id):
            completed = services.appointments.complete(admin, booked.id)

        assert completed.status == AppointmentStatus.COMPLETED
        history = services.audit.get_entity_history("task", task.id)
        assert history[0]["changes"] == {"status": {"old": "assigned", "new": "completed"}}

    def test_completed_is_terminal(self, services, admin, booked):
        """No way out of completed."""
        with acting_as(admin.user_id):
            services.appointments.complete(admin, booked.id)
            with pytest.raises(InvalidTransitionError):
                services.appointments.complete(admin, booked.id)

    def test_customer_cannot_complete(self, services, customer, booked):
        """Customers never move status."""
        with pytest.raises(AuthorizationDenied):
            services.appointments.complete(customer, booked.id)
