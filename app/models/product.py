import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Storefront product listed by an approved vendor.

    owner_id is the vendor id (== users.id of the partner).
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    owner_id: uuid.UUID = Field(
        foreign_key="vendors.id",
        index=True,
        description="Vendor that owns this listing",
    )

    name: str = Field(
        max_length=100,
        min_length=3,
        index=True,
        description="Display name of the product",
    )

    slug: str = Field(
        max_length=255,
        unique=True,
        index=True,
        description="URL-friendly identifier (unique)",
    )

    description: str | None = Field(
        default=None,
        description="Optional long description",
    )

    category: str = Field(
        max_length=50,
        index=True,
        description="Product category, e.g. Spices, Grains",
    )

    price: float = Field(
        gt=0,
        description="Unit price",
    )

    # kg | bag | crate | litre ...
    unit: str = Field(default="kg", max_length=20)

    min_order: float = Field(
        default=1,
        gt=0,
        description="Minimum order quantity, in `unit`",
    )

    stock_on_hand: int = Field(
        default=0,
        ge=0,
        description="How many units currently in stock",
    )

    is_active: bool = Field(
        default=True,
        index=True,
        description="Whether this product is visible on the storefront",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )
