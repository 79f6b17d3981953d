import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Identity record: the application profile of an authenticated principal.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    Role:
      - customer | partner | manager | admin | super_admin
      - "guest" is represented by the absence of a row / missing token.

    Status:
      - "Active" for ordinary accounts
      - mirrors vendors.status for partners (pending_approval, approved, ...)

    This table is *not* responsible for password hashes. Supabase Auth
    stores the password in its own schema.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    name: str = Field(
        max_length=100,
        description="Display name; first part of email by default",
    )

    role: str = Field(
        default="customer",
        index=True,
        description="Application role",
    )

    status: str = Field(
        default="Active",
        index=True,
        description="Account status",
    )

    provider: str = Field(
        default="email",
        description="Signup provider: email | google",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
