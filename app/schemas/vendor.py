import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

VendorStatusName = Literal["pending_approval", "approved", "rejected", "suspended"]


class VendorDocument(SQLModel):
    name: str
    type: str
    url: str


class VendorRead(SQLModel):
    id: uuid.UUID
    business_name: str
    contact_person: str | None = None
    email: str
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    business_type: str | None = None
    categories: list[str] = Field(default_factory=list)
    status: VendorStatusName
    moderator_id: uuid.UUID | None = None
    moderator_name: str | None = None
    status_changed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    suspended_at: datetime | None = None
    rejection_reason: str | None = None
    suspension_reason: str | None = None
    documents: list[VendorDocument] = Field(default_factory=list)
    created_at: datetime


class VendorStatusUpdate(SQLModel):
    """Generic admin status change (vendor details page)."""

    model_config = ConfigDict(extra="forbid")

    status: VendorStatusName
    reason: str | None = Field(default=None, max_length=1000)


class VendorModerationReason(SQLModel):
    """Optional free-text reason for reject / suspend."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=1000)

    @field_validator("reason")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None

