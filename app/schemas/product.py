import uuid
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class ProductRead(SQLModel):
    """
    Product representation for clients.
    """

    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    slug: str
    description: str | None = None
    category: str
    price: float
    unit: str
    min_order: float
    stock_on_hand: int
    is_active: bool
    created_at: datetime


class ProductCreate(SQLModel):
    """
    Payload for creating a product (approved vendors only).

    - slug is optional: if omitted, generated from `name`.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=3, max_length=100)
    slug: str | None = None
    description: str | None = None
    category: str = Field(max_length=50)
    price: float = Field(gt=0)
    unit: str = Field(default="kg", max_length=20)
    min_order: float = Field(default=1, gt=0)
    stock_on_hand: int = Field(default=0, ge=0)
    is_active: bool = True

    @field_validator("name", "category")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("slug cannot be empty if provided")
        return v


class ProductUpdate(SQLModel):
    """
    Partial update payload for products.
    All fields are optional.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = None
    category: str | None = Field(default=None, max_length=50)
    price: float | None = Field(default=None, gt=0)
    unit: str | None = Field(default=None, max_length=20)
    min_order: float | None = Field(default=None, gt=0)
    stock_on_hand: int | None = Field(default=None, ge=0)
    is_active: bool | None = None

    @field_validator("name", "category")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v
