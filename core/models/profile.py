"""Profile (identity-linked user record) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """What a profile may do in the shop."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    TECHNICIAN = "technician"


class ProfileCreate(BaseModel):
    """Data required to provision a profile for a new identity."""

    user_id: UUID
    full_name: str = Field(..., min_length=1)
    phone: str | None = None
    role: Role = Role.CUSTOMER


class ProfileUpdate(BaseModel):
    """Fields that can change on a profile. All optional."""

    full_name: str | None = Field(None, min_length=1)
    phone: str | None = None
    role: Role | None = None
    is_approved: bool | None = None


SELF_EDITABLE_FIELDS = frozenset({"full_name", "phone"})


class Profile(BaseModel):
    """Full profile as stored. Also the caller identity handed to services."""

    id: UUID
    user_id: UUID
    full_name: str
    phone: str | None = None
    role: Role
    is_approved: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER

    @property
    def is_active_technician(self) -> bool:
        """Technician whose account an admin has approved."""
        return self.role == Role.TECHNICIAN and self.is_approved
