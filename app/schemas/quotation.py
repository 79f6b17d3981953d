import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

QuotationStatus = Literal["Pending", "Approved", "Declined"]


class QuotationItem(SQLModel):
    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    product_name: str | None = None
    quantity: float = Field(gt=0)
    unit: str = ""


class QuotationCreate(SQLModel):
    """
    Bulk quotation request.

    Backend derives customer_id from the token and status = 'Pending'.
    Missing product names are filled from the catalog.
    """

    model_config = ConfigDict(extra="forbid")

    products: list[QuotationItem] = Field(min_length=1)
    delivery_location: str = ""
    preferred_schedule: str = ""
    monthly_volume: str = ""
    additional_info: str = Field(default="", max_length=5000)


class QuotationRead(SQLModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    products: list[QuotationItem]
    delivery_location: str
    preferred_schedule: str
    monthly_volume: str
    additional_info: str
    status: QuotationStatus
    reviewed_by: uuid.UUID | None = None
    created_at: datetime


class QuotationStatusUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    status: QuotationStatus
