import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def utc_now_iso() -> str:
    """Client-side ISO-8601 timestamp (activity entries are not server-timed)."""
    return datetime.now(timezone.utc).isoformat()


class Vendor(SQLModel, table=True):
    """
    Business profile of a partner/vendor.

    Keyed by the same id as the owning users row (1:1, shared primary key).
    `status` mirrors users.status; both are written in the same commit by
    the lifecycle service.
    """

    __tablename__ = "vendors"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Same id as users.id of the owning principal",
    )

    business_name: str = Field(max_length=200, index=True)
    contact_person: str | None = Field(default=None, max_length=200)
    email: str = Field(index=True)
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    business_type: str | None = None

    categories: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Product categories offered",
    )

    # pending_approval | approved | rejected | suspended
    status: str = Field(default="pending_approval", index=True)

    # Moderation metadata (last admin who changed the status)
    moderator_id: uuid.UUID | None = None
    moderator_name: str | None = None
    status_changed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    suspended_at: datetime | None = None
    rejection_reason: str | None = None
    suspension_reason: str | None = None

    # [{"name": ..., "type": ..., "url": ...}]
    documents: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )


class VendorActivity(SQLModel, table=True):
    """
    Append-only audit entry for anything that affects a vendor.

    type: status_change | approved | suspended | rejected |
          document_uploaded | product_added
    """

    __tablename__ = "vendor_activity"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # Not a foreign key: entries outlive vendor rows.
    vendor_id: uuid.UUID = Field(index=True)

    type: str = Field(index=True)
    note: str | None = None
    admin_id: uuid.UUID | None = None

    created_at: str = Field(
        default_factory=utc_now_iso,
        index=True,
        description="ISO-8601 string generated by the writer, not the DB",
    )
