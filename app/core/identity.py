"""
Supabase Auth as the identity provider.

The rest of the app only sees opaque principal ids (UUID "sub") and the
small IdentityProvider surface below. Provider errors are mapped to a
fixed set of user-facing messages; raw provider text never reaches
clients.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx
from supabase import AuthApiError, AuthError

from app.core.supabase_client import supabase_admin, supabase_auth_client

logger = logging.getLogger(__name__)


AUTH_ERROR_MESSAGES: dict[str, str] = {
    "invalid_credentials": "Invalid email or password.",
    "email_not_confirmed": "Please confirm your email address before signing in.",
    "user_banned": "This account has been disabled. Contact support.",
    "over_request_rate_limit": "Too many attempts. Please wait a moment and try again.",
    "over_email_send_rate_limit": "Too many emails requested. Please try again later.",
    "email_exists": "An account with this email already exists.",
    "user_already_exists": "An account with this email already exists.",
    "weak_password": "Password is too weak. Use at least 6 characters.",
    "network": "Could not reach the sign-in service. Check your connection.",
}
GENERIC_AUTH_MESSAGE = "Authentication failed. Please try again."


class IdentityError(Exception):
    """A provider call failed; `message` is safe to show to users."""

    def __init__(self, code: str, message: str, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


def _error_code(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPError):
        return "network"
    if isinstance(exc, AuthApiError):
        code = getattr(exc, "code", None)
        if code:
            return code
        text = str(exc).lower()
        if "invalid login credentials" in text:
            return "invalid_credentials"
        if "already" in text and "registered" in text:
            return "email_exists"
        if getattr(exc, "status", None) == 429:
            return "over_request_rate_limit"
    return "unknown"


def map_auth_error(exc: Exception) -> IdentityError:
    """Translate a Supabase / transport exception into an IdentityError."""
    code = _error_code(exc)
    return IdentityError(
        code=code,
        message=AUTH_ERROR_MESSAGES.get(code, GENERIC_AUTH_MESSAGE),
        status=getattr(exc, "status", None),
    )


@dataclass
class AuthTokens:
    """Result of a successful password sign-in."""

    principal_id: uuid.UUID
    email: str
    access_token: str
    refresh_token: str | None = None
    name: str | None = None


class IdentityProvider(Protocol):
    def create_credential(self, email: str, password: str, name: str | None = None) -> uuid.UUID: ...

    def delete_credential(self, principal_id: uuid.UUID) -> None: ...

    def sign_in(self, email: str, password: str) -> AuthTokens: ...

    def sign_out(self, access_token: str) -> None: ...

    def send_password_reset(self, email: str) -> None: ...


class SupabaseIdentityProvider:
    """IdentityProvider backed by Supabase Auth (admin + anon clients)."""

    def create_credential(self, email: str, password: str, name: str | None = None) -> uuid.UUID:
        attributes = {
            "email": email,
            "password": password,
            "email_confirm": True,
        }
        if name:
            attributes["user_metadata"] = {"full_name": name}
        try:
            response = supabase_admin().auth.admin.create_user(attributes)
        except (AuthError, httpx.HTTPError) as exc:
            logger.warning("Credential creation failed for %s: %s", email, exc)
            raise map_auth_error(exc) from exc
        return uuid.UUID(str(response.user.id))

    def delete_credential(self, principal_id: uuid.UUID) -> None:
        try:
            supabase_admin().auth.admin.delete_user(str(principal_id))
        except (AuthError, httpx.HTTPError) as exc:
            raise map_auth_error(exc) from exc

    def sign_in(self, email: str, password: str) -> AuthTokens:
        try:
            response = supabase_auth_client().auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except (AuthError, httpx.HTTPError) as exc:
            raise map_auth_error(exc) from exc

        user, session = response.user, response.session
        if user is None or session is None:
            raise IdentityError("invalid_credentials", AUTH_ERROR_MESSAGES["invalid_credentials"])

        metadata = user.user_metadata or {}
        return AuthTokens(
            principal_id=uuid.UUID(str(user.id)),
            email=user.email or email,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            name=metadata.get("full_name") or metadata.get("name"),
        )

    def sign_out(self, access_token: str) -> None:
        try:
            supabase_admin().auth.admin.sign_out(access_token)
        except (AuthError, httpx.HTTPError) as exc:
            raise map_auth_error(exc) from exc

    def send_password_reset(self, email: str) -> None:
        try:
            supabase_auth_client().auth.reset_password_for_email(email)
        except (AuthError, httpx.HTTPError) as exc:
            raise map_auth_error(exc) from exc


def get_identity_provider() -> IdentityProvider:
    """FastAPI dependency; overridden in tests."""
    return SupabaseIdentityProvider()
