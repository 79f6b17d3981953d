from pydantic import EmailStr, ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

from app.schemas.user import SessionRead


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("field cannot be empty")
    return v


class SignupRequest(SQLModel):
    """Customer self-signup (email + password)."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(max_length=100)
    phone: str | None = None

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        return _strip_required(v)


class VendorSignupRequest(SQLModel):
    """
    Vendor / partner self-signup.

    categories accepts either a list or the comma-separated string the
    signup form sends ("Spices, Vegetables, Grains").
    """

    model_config = ConfigDict(extra="forbid")

    business_name: str = Field(max_length=200)
    contact_person: str = Field(max_length=200)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    business_type: str | None = None
    categories: list[str] = Field(default_factory=list)

    @field_validator("business_name", "contact_person")
    @classmethod
    def not_empty(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("categories", mode="before")
    @classmethod
    def split_categories(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [c.strip() for c in v if c and c.strip()]

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match.")
        return self


class LoginRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str


class LoginResponse(SQLModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    session: SessionRead
    redirect_to: str


class PasswordResetRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
