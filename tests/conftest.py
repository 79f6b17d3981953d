import os
import time
import uuid

# Settings are read once at import time; point them at throwaway values
# before anything from `app` is imported.
os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["SESSION_SELF_HEAL"] = "true"
for _name in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_PASSWORD"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.identity import AUTH_ERROR_MESSAGES, AuthTokens, IdentityError, get_identity_provider
from app.database import get_session, get_session_factory
from app.main import app
from app.models.user import User
from app.models.vendor import Vendor

TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]


def make_token(principal_id: uuid.UUID, email: str | None = None, name: str | None = None) -> str:
    """Sign a Supabase-shaped access token with the test secret."""
    claims = {
        "sub": str(principal_id),
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
        "app_metadata": {"provider": "email"},
        "user_metadata": {"full_name": name} if name else {},
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")


class FakeIdentityProvider:
    """In-memory stand-in for Supabase Auth."""

    def __init__(self):
        self.credentials: dict[str, tuple[uuid.UUID, str, str | None]] = {}
        self.deleted: list[uuid.UUID] = []
        self.signed_out: list[str] = []
        self.reset_requests: list[str] = []

    def create_credential(self, email, password, name=None):
        if email in self.credentials:
            raise IdentityError("email_exists", AUTH_ERROR_MESSAGES["email_exists"], 422)
        principal_id = uuid.uuid4()
        self.credentials[email] = (principal_id, password, name)
        return principal_id

    def delete_credential(self, principal_id):
        for email, (pid, _, _) in list(self.credentials.items()):
            if pid == principal_id:
                del self.credentials[email]
        self.deleted.append(principal_id)

    def sign_in(self, email, password):
        entry = self.credentials.get(email)
        if entry is None or entry[1] != password:
            raise IdentityError("invalid_credentials", AUTH_ERROR_MESSAGES["invalid_credentials"], 400)
        principal_id, _, name = entry
        return AuthTokens(
            principal_id=principal_id,
            email=email,
            access_token=make_token(principal_id, email, name),
            refresh_token="refresh-" + str(principal_id),
            name=name,
        )

    def sign_out(self, access_token):
        self.signed_out.append(access_token)

    def send_password_reset(self, email):
        self.reset_requests.append(email)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def client(engine, session_factory, identity):
    """TestClient wired to the in-memory engine and the fake provider."""

    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_identity_provider] = lambda: identity

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    """Insert an identity record and return (user, auth headers)."""

    def factory(role: str = "customer", status: str = "Active", email: str | None = None, name: str = "Test User"):
        user_id = uuid.uuid4()
        email = email or f"{role}-{user_id.hex[:8]}@example.com"
        user = User(id=user_id, email=email, name=name, role=role, status=status)
        session.add(user)
        session.commit()
        session.refresh(user)
        headers = {"Authorization": f"Bearer {make_token(user_id, email, name)}"}
        return user, headers

    return factory


@pytest.fixture
def make_vendor(session):
    """Insert a vendor and (optionally) its identity record."""

    def factory(
        business_name: str = "Green Acres",
        status: str = "pending_approval",
        with_user: bool = True,
        categories: list[str] | None = None,
    ):
        vendor_id = uuid.uuid4()
        email = f"vendor-{vendor_id.hex[:8]}@example.com"
        if with_user:
            session.add(
                User(
                    id=vendor_id,
                    email=email,
                    name="Vendor Contact",
                    role="partner",
                    status=status,
                )
            )
        vendor = Vendor(
            id=vendor_id,
            business_name=business_name,
            contact_person="Vendor Contact",
            email=email,
            categories=categories or ["Grains"],
            status=status,
        )
        session.add(vendor)
        session.commit()
        session.refresh(vendor)
        return vendor

    return factory


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", name="Ada Admin")
