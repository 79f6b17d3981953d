from unittest.mock import patch

import httpx
import pytest
from fastapi import HTTPException
from sqlmodel import select

from app.core.identity import GENERIC_AUTH_MESSAGE, map_auth_error
from app.core.rate_limit import LoginThrottle
from app.models.user import User
from app.models.vendor import Vendor
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.auth import LoginRequest, SignupRequest, VendorSignupRequest
from app.services.registration_service import RegistrationService
from app.services.session_service import SessionResolver

VENDOR_FORM = {
    "business_name": "Sunrise Farms",
    "contact_person": "Sam Sunrise",
    "email": "sam@sunrise.example.com",
    "password": "secret123",
    "confirm_password": "secret123",
    "phone": "555-0101",
    "city": "Nairobi",
    "categories": "Spices, Vegetables, Grains",
}


@pytest.fixture
def registration():
    return RegistrationService(UserRepository(), VendorRepository(), LoginThrottle(3, 60))


class TestSignup:
    def test_customer_signup_then_login(self, client, identity):
        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "Cara@Example.com", "password": "secret123", "name": "Cara"},
        )
        assert response.status_code == 201
        assert response.json()["role"] == "customer"
        assert response.json()["email"] == "cara@example.com"

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "cara@example.com", "password": "secret123"},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["redirect_to"] == "/dashboard"
        assert body["session"]["source"] == "users"
        assert body["token_type"] == "bearer"

    def test_vendor_signup_writes_both_records(self, client, session):
        response = client.post("/api/v1/auth/signup/vendor", json=VENDOR_FORM)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending_approval"
        assert body["categories"] == ["Spices", "Vegetables", "Grains"]

        session.expire_all()
        user = session.exec(select(User).where(User.email == VENDOR_FORM["email"])).one()
        assert user.role == "partner"
        assert user.status == "pending_approval"
        assert session.get(Vendor, user.id) is not None

    def test_pending_vendor_lands_on_pending_page(self, client):
        client.post("/api/v1/auth/signup/vendor", json=VENDOR_FORM)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": VENDOR_FORM["email"], "password": VENDOR_FORM["password"]},
        )
        assert response.json()["redirect_to"] == "/vendor/pending"

    def test_password_mismatch(self, client):
        response = client.post(
            "/api/v1/auth/signup/vendor",
            json={**VENDOR_FORM, "confirm_password": "different"},
        )
        assert response.status_code == 422

    def test_duplicate_email(self, client):
        payload = {"email": "dup@example.com", "password": "secret123", "name": "Dup"}
        assert client.post("/api/v1/auth/signup", json=payload).status_code == 201
        assert client.post("/api/v1/auth/signup", json=payload).status_code == 409


class TestSignupRollback:
    """A failed store write removes the credential again."""

    def test_vendor_rollback_then_retry(self, registration, session, identity):
        payload = VendorSignupRequest(**VENDOR_FORM)

        with patch.object(
            registration.vendor_repo,
            "save_with_identity",
            side_effect=RuntimeError("store unavailable"),
        ):
            with pytest.raises(RuntimeError, match="store unavailable"):
                registration.signup_vendor(session, identity, payload)

        assert identity.credentials == {}
        assert len(identity.deleted) == 1
        assert session.exec(select(Vendor)).all() == []
        assert session.exec(select(User)).all() == []

        vendor = registration.signup_vendor(session, identity, payload)
        assert vendor.status == "pending_approval"
        assert VENDOR_FORM["email"] in identity.credentials

    def test_customer_rollback(self, registration, session, identity):
        payload = SignupRequest(email="lee@example.com", password="secret123", name="Lee")

        with patch.object(registration.user_repo, "create", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                registration.signup_customer(session, identity, payload)

        assert identity.credentials == {}
        assert session.exec(select(User)).all() == []

    def test_failing_compensation_keeps_original_error(self, registration, session, identity):
        payload = SignupRequest(email="kim@example.com", password="secret123", name="Kim")

        with patch.object(registration.user_repo, "create", side_effect=RuntimeError("store")), patch.object(
            identity, "delete_credential", side_effect=ConnectionError("auth down")
        ):
            with pytest.raises(RuntimeError, match="store"):
                registration.signup_customer(session, identity, payload)


class TestLogin:
    def test_wrong_password(self, client, identity):
        client.post(
            "/api/v1/auth/signup",
            json={"email": "wrong@example.com", "password": "secret123", "name": "W"},
        )

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "wrong@example.com", "password": "nope"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password."

    def test_throttled_after_repeated_failures(self, registration, session, identity):
        resolver = SessionResolver(UserRepository(), VendorRepository())
        bad = LoginRequest(email="t@example.com", password="bad")
        for _ in range(3):
            with pytest.raises(HTTPException) as exc:
                registration.login(session, identity, resolver, bad)
            assert exc.value.status_code == 401

        with pytest.raises(HTTPException) as exc:
            registration.login(session, identity, resolver, bad)
        assert exc.value.status_code == 429
        assert exc.value.detail["retry_after"] > 0

    def test_logout_revokes_token(self, client, identity):
        client.post(
            "/api/v1/auth/signup",
            json={"email": "out@example.com", "password": "secret123", "name": "Out"},
        )
        token = client.post(
            "/api/v1/auth/login",
            json={"email": "out@example.com", "password": "secret123"},
        ).json()["access_token"]

        response = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 204
        assert identity.signed_out == [token]

    def test_password_reset_is_always_accepted(self, client, identity):
        response = client.post("/api/v1/auth/password-reset", json={"email": "Who@Example.com"})

        assert response.status_code == 202
        assert identity.reset_requests == ["who@example.com"]


class TestErrorMapping:
    def test_network_errors(self):
        error = map_auth_error(httpx.ConnectError("unreachable"))
        assert error.code == "network"
        assert "connection" in error.message

    def test_unknown_errors_get_generic_message(self):
        error = map_auth_error(RuntimeError("kaboom"))
        assert error.code == "unknown"
        assert error.message == GENERIC_AUTH_MESSAGE
