"""
Profile service for shop accounts.

Provisions a profile when an identity registers and handles self-service
edits and admin approval of technician accounts.
"""

import logging
from uuid import UUID

from core.audit import AuditAction, AuditLogger, compute_changes
from core.authorization import Action, require
from core.errors import NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import TechnicianApproved, TechnicianRevoked
from core.models import Profile, ProfileCreate, ProfileUpdate, Role
from core.repositories.base import Store

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for profile operations."""

    def __init__(self, store: Store, audit: AuditLogger, bus: EventBus):
        self.profiles = store.profiles
        self.audit = audit
        self.bus = bus

    def provision(
        self,
        user_id: UUID,
        full_name: str,
        role: Role = Role.CUSTOMER,
        phone: str | None = None
    ) -> Profile:
        """
        Create the profile for a newly registered identity.

        Customers and admins are approved immediately; technicians wait for
        an admin.

        Raises:
            ValueError: If the user already has a profile
        """
        data = ProfileCreate(user_id=user_id, full_name=full_name, phone=phone, role=role)
        profile = self.profiles.create(data, is_approved=role != Role.TECHNICIAN)

        self.audit.log_change(
            entity_type="profile",
            entity_id=profile.id,
            action=AuditAction.CREATE,
            changes={"created": profile.model_dump(mode="json")}
        )
        logger.info("Provisioned %s profile for %s", role.value, user_id)
        return profile

    def _get_or_raise(self, user_id: UUID) -> Profile:
        profile = self.profiles.get_by_user_id(user_id)
        if profile is None:
            raise NotFoundError(f"Profile for user {user_id} not found")
        return profile

    def find(self, user_id: UUID) -> Profile | None:
        """Lookup without an authorization check. Resolves the caller of a request."""
        return self.profiles.get_by_user_id(user_id)

    def get(self, caller: Profile, user_id: UUID) -> Profile:
        """
        Raises:
            NotFoundError, AuthorizationDenied
        """
        profile = self._get_or_raise(user_id)
        require(caller, Action.VIEW_PROFILE, profile)
        return profile

    def update(self, caller: Profile, user_id: UUID, data: ProfileUpdate) -> Profile:
        """
        Update profile fields.

        Owners may change name and phone; admins may change anything.

        Raises:
            NotFoundError, AuthorizationDenied
        """
        current = self._get_or_raise(user_id)
        fields = data.model_dump(exclude_unset=True)
        require(caller, Action.UPDATE_PROFILE, current, fields)
        if not fields:
            return current

        updated = self.profiles.update(user_id, fields)
        self._audit_update(current, updated)
        return updated

    def approve_technician(self, caller: Profile, user_id: UUID) -> Profile:
        """
        Grant a technician account access to its dashboard.

        Approving an already approved technician changes nothing.

        Raises:
            NotFoundError, AuthorizationDenied,
            ValidationError: If the profile is not a technician
        """
        return self._set_technician_approval(caller, user_id, approved=True)

    def revoke_technician(self, caller: Profile, user_id: UUID) -> Profile:
        """Withdraw a technician's approval. Mirror of approve_technician."""
        return self._set_technician_approval(caller, user_id, approved=False)

    def _set_technician_approval(self, caller: Profile, user_id: UUID, approved: bool) -> Profile:
        require(caller, Action.APPROVE_TECHNICIAN)
        current = self._get_or_raise(user_id)
        if current.role != Role.TECHNICIAN:
            raise ValidationError(f"Profile for user {user_id} is not a technician", field="user_id")
        if current.is_approved == approved:
            return current

        updated = self.profiles.update(user_id, {"is_approved": approved})
        self._audit_update(current, updated)

        if approved:
            logger.info("Technician %s approved", user_id)
            self.bus.publish(TechnicianApproved.create(updated))
        else:
            logger.info("Technician %s approval revoked", user_id)
            self.bus.publish(TechnicianRevoked.create(updated))
        return updated

    def list_technicians(self, approved: bool | None = None) -> list[Profile]:
        """Technicians by name. The booking form lists approved ones."""
        return self.profiles.list_technicians(approved)

    def _audit_update(self, old: Profile, new: Profile) -> None:
        changes = compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="profile",
                entity_id=new.id,
                action=AuditAction.UPDATE,
                changes=changes
            )
