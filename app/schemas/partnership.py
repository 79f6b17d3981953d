import uuid
from datetime import datetime
from typing import Literal

from pydantic import EmailStr, ConfigDict, field_validator
from sqlmodel import SQLModel, Field

Tier = Literal["Starter", "Growth", "Enterprise"]
PartnershipStatus = Literal["Pending", "Approved", "Rejected"]


class PartnershipCreate(SQLModel):
    """
    Public partnership form.

    Backend derives:
      - user_id from the token when the visitor is signed in
      - status = 'Pending'
    """

    model_config = ConfigDict(extra="forbid")

    business_name: str = Field(max_length=200)
    contact_person: str = Field(max_length=200)
    email: EmailStr
    phone: str | None = None
    tier: Tier
    message: str | None = Field(default=None, max_length=5000)

    @field_validator("business_name", "contact_person")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class PartnershipRead(SQLModel):
    id: uuid.UUID
    business_name: str
    contact_person: str
    email: str
    phone: str | None = None
    tier: Tier
    message: str | None = None
    user_id: uuid.UUID | None = None
    status: PartnershipStatus
    created_at: datetime


class PartnershipStatusUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    status: PartnershipStatus
