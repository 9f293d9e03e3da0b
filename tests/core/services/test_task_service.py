"""Tests for TaskService."""

from uuid import uuid4

import pytest

from core.errors import (
    AssignmentIncomplete, AuthorizationDenied, InvalidTransitionError, NotFoundError, ValidationError,
)
from core.models import AppointmentStatus, AssignmentRequest, TaskStatus
from utils.user_context import acting_as


def _request(appointment_id, technician_id, **overrides):
    data = dict(
        appointment_id=appointment_id,
        technician_id=technician_id,
        task_description="Replace brake pads",
        estimated_duration_hours=1.5,
    )
    data.update(overrides)
    return AssignmentRequest(**data)


@pytest.fixture
def task(services, admin, technician, booked):
    """An assigned task on the approved appointment."""
    with acting_as(admin.user_id):
        return services.tasks.assign(admin, _request(booked.id, technician.user_id))


class TestAssign:
    """Admin assignment."""

    def test_pending_becomes_approved(self, services, store, admin, technician, pending):
        """Assignment approves and sets technician and estimate."""
        with acting_as(admin.user_id):
            task = services.tasks.assign(admin, _request(pending.id, technician.user_id))

        appointment = store.appointments.get(pending.id)
        assert appointment.status == AppointmentStatus.APPROVED
        assert appointment.technician_id == technician.user_id
        assert appointment.estimated_duration_hours == 1.5
        assert task.status == TaskStatus.ASSIGNED
        assert task.task_description == "Replace brake pads"

    def test_admin_notes_written(self, services, store, admin, technician, pending):
        """Notes on the form land on the appointment."""
        with acting_as(admin.user_id):
            services.tasks.assign(admin, _request(pending.id, technician.user_id, admin_notes="Bring pads"))

        assert store.appointments.get(pending.id).admin_notes == "Bring pads"

    def test_same_technician_adds_hours(self, services, store, admin, technician, task, booked):
        """A second task for the same technician sums the estimate."""
        with acting_as(admin.user_id):
            services.tasks.assign(admin, _request(booked.id, technician.user_id, estimated_duration_hours=2))

        assert store.appointments.get(booked.id).estimated_duration_hours == 3.5
        assert len(store.tasks.list_for_appointment(booked.id)) == 2

    def test_different_technician_refused(self, services, admin, technician_b, task, booked):
        """One technician per appointment."""
        with pytest.raises(InvalidTransitionError):
            services.tasks.assign(admin, _request(booked.id, technician_b.user_id))

    def test_rejected_appointment_refused(self, services, admin, technician, pending):
        """Rejected appointments take no work."""
        with acting_as(admin.user_id):
            services.appointments.reject(admin, pending.id, "No parts")
        with pytest.raises(InvalidTransitionError):
            services.tasks.assign(admin, _request(pending.id, technician.user_id))

    def test_incomplete_form(self, services, admin, booked):
        """Missing fields are listed."""
        with pytest.raises(AssignmentIncomplete) as exc:
            services.tasks.assign(admin, AssignmentRequest(appointment_id=booked.id, task_description=""))

        assert exc.value.missing == ["estimated_duration_hours", "task_description", "technician_id"]

    def test_unknown_appointment(self, services, admin, technician):
        """NotFoundError for a bad id."""
        with pytest.raises(NotFoundError):
            services.tasks.assign(admin, _request(uuid4(), technician.user_id))

    def test_unapproved_technician(self, services, admin, pending_technician, booked):
        """Only approved technicians can be assigned."""
        with pytest.raises(ValidationError, match="approved technician"):
            services.tasks.assign(admin, _request(booked.id, pending_technician.user_id))

    def test_customer_cannot_assign(self, services, customer, technician, booked):
        """Admin only."""
        with pytest.raises(AuthorizationDenied):
            services.tasks.assign(customer, _request(booked.id, technician.user_id))

    def test_audited(self, services, admin, task):
        """Task creation is in the audit log."""
        history = services.audit.get_entity_history("task", task.id)
        assert history[0]["action"] == "create"
        assert history[0]["user_id"] == admin.user_id


class TestUpdateStatus:
    """Forward-only task progress."""

    def test_forward_steps(self, services, technician, task):
        """assigned -> in_progress -> completed."""
        with acting_as(technician.user_id):
            moved = services.tasks.update_status(technician, task.id, "in_progress")
            done = services.tasks.update_status(technician, task.id, TaskStatus.COMPLETED)

        assert moved.status == TaskStatus.IN_PROGRESS
        assert done.status == TaskStatus.COMPLETED

    def test_same_status_noop(self, services, technician, task):
        """No write and no audit entry."""
        result = services.tasks.update_status(technician, task.id, TaskStatus.ASSIGNED)

        assert result == task
        assert len(services.audit.get_entity_history("task", task.id)) == 1

    def test_skip_refused(self, services, technician, task):
        """assigned -> completed skips a step."""
        with pytest.raises(InvalidTransitionError):
            services.tasks.update_status(technician, task.id, TaskStatus.COMPLETED)

    def test_regression_refused(self, services, technician, task):
        """No going back."""
        services.tasks.update_status(technician, task.id, TaskStatus.IN_PROGRESS)
        with pytest.raises(InvalidTransitionError):
            services.tasks.update_status(technician, task.id, TaskStatus.ASSIGNED)

    def test_unknown_status(self, services, technician, task):
        """Garbage status is a validation error."""
        with pytest.raises(ValidationError, match="Unknown task status"):
            services.tasks.update_status(technician, task.id, "paused")

    def test_other_technician_refused(self, services, technician_b, task):
        """Only the assigned technician."""
        with pytest.raises(AuthorizationDenied):
            services.tasks.update_status(technician_b, task.id, TaskStatus.IN_PROGRESS)

    def test_task_change_never_moves_appointment(self, services, store, technician, task, booked):
        """Appointment status is untouched."""
        services.tasks.update_status(technician, task.id, TaskStatus.IN_PROGRESS)

        assert store.appointments.get(booked.id).status == AppointmentStatus.APPROVED


class TestReads:
    """Lists and counts."""

    def test_get(self, services, technician, technician_b, task):
        """Owner reads, others don't."""
        assert services.tasks.get(technician, task.id).id == task.id
        with pytest.raises(AuthorizationDenied):
            services.tasks.get(technician_b, task.id)

    def test_list_for_caller(self, services, admin, technician, technician_b, task):
        """Technician sees own, admin sees all."""
        assert [t.id for t in services.tasks.list_for_caller(technician)] == [task.id]
        assert services.tasks.list_for_caller(technician_b) == []
        assert [t.id for t in services.tasks.list_for_caller(admin)] == [task.id]

    def test_customer_cannot_list(self, services, customer, task):
        """Tasks are staff-only."""
        with pytest.raises(AuthorizationDenied):
            services.tasks.list_for_caller(customer)

    def test_pending_technician_cannot_list(self, services, pending_technician):
        """Approval first."""
        with pytest.raises(AuthorizationDenied, match="awaiting admin approval"):
            services.tasks.list_for_caller(pending_technician)

    def test_list_for_appointment_scoped(self, services, admin, technician_b, task, booked):
        """Another technician sees none of this appointment's tasks."""
        assert len(services.tasks.list_for_appointment(admin, booked.id)) == 1
        assert services.tasks.list_for_appointment(technician_b, booked.id) == []

    def test_summary(self, services, admin, technician, task):
        """Counts per status."""
        services.tasks.update_status(technician, task.id, TaskStatus.IN_PROGRESS)

        counts = services.tasks.summary_for_technician(technician)
        assert (counts.assigned, counts.in_progress, counts.completed) == (0, 1, 0)
        assert services.tasks.summary_for_technician(admin, technician.user_id).total == 1

    def test_summary_of_another_technician_denied(self, services, technician, technician_b):
        """Technicians see only their own counts."""
        with pytest.raises(AuthorizationDenied):
            services.tasks.summary_for_technician(technician, technician_b.user_id)

    def test_revoked_technician_cannot_read_summary(self, services, admin, technician, task):
        """Counts are gated on approval like the task list."""
        with acting_as(admin.user_id):
            revoked = services.profiles.revoke_technician(admin, technician.user_id)

        with pytest.raises(AuthorizationDenied, match="awaiting admin approval"):
            services.tasks.summary_for_technician(revoked)
        assert services.tasks.summary_for_technician(admin, technician.user_id).total == 1
