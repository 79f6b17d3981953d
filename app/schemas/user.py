import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

# App-level roles. "guest" = no token, so we don't store it here.
RoleName = Literal["customer", "partner", "manager", "admin", "super_admin"]
UserStatusName = Literal["Active", "pending_approval", "approved", "rejected", "suspended"]


class UserRead(SQLModel):
    """Response schema returned to clients."""

    id: uuid.UUID
    email: str
    name: str
    role: RoleName
    status: UserStatusName
    provider: str
    created_at: datetime


class UserUpdate(SQLModel):
    """
    Partial profile update for authenticated users.
    Only editable field is `name` here.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class UserStatusUpdate(SQLModel):
    """
    Admin-only status change for non-vendor accounts.
    Vendor accounts go through the vendor lifecycle endpoints.
    """

    model_config = ConfigDict(extra="forbid")
    status: UserStatusName


class SessionRead(SQLModel):
    """The resolved session as seen by the client's route gate."""

    state: str
    principal_id: uuid.UUID | None = None
    email: str | None = None
    name: str | None = None
    role: RoleName | None = None
    status: str | None = None
    source: str | None = None
    landing_route: str
