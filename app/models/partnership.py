import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Partnership(SQLModel, table=True):
    """
    Partnership inquiry submitted from the public partnership page.

    - user_id is optional: anonymous visitors may submit.
    - status: Pending | Approved | Rejected (set by admins/managers)
    """

    __tablename__ = "partnerships"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    business_name: str = Field(max_length=200, index=True)
    contact_person: str = Field(max_length=200)
    email: str
    phone: str | None = None

    # Starter | Growth | Enterprise
    tier: str = Field(index=True)
    message: str | None = None

    user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
    )

    status: str = Field(default="Pending", index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Server-side creation timestamp (UTC)",
    )
