import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Quotation(SQLModel, table=True):
    """
    Bulk quotation request raised by a buyer from the storefront.

    products is a snapshot list:
      [{"product_id", "product_name", "quantity", "unit"}]
    """

    __tablename__ = "quotations"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    customer_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    products: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    delivery_location: str = ""
    preferred_schedule: str = ""
    monthly_volume: str = ""
    additional_info: str = ""

    # Pending | Approved | Declined
    status: str = Field(default="Pending", index=True)
    reviewed_by: uuid.UUID | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
