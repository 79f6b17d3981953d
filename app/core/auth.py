import uuid
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from app.core.config import get_settings
from app.core.roles import ADMIN_ROLES, LOGIN_ROUTE, STAFF_ROLES, Role, landing_route
from app.database import get_session
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.services.session_service import Principal, SessionContext, SessionResolver

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support "guest" mode (unauthenticated).
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token", "redirect_to": LOGIN_ROUTE},
        )


def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal | None:
    """
    Turn the bearer token into a Principal, or None for guests.

    Raises:
        HTTPException(401): if token is malformed or missing required claims.
    """
    if credentials is None:
        return None  # guest mode

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Token missing sub", "redirect_to": LOGIN_ROUTE},
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid sub in token", "redirect_to": LOGIN_ROUTE},
        )

    metadata = payload.get("user_metadata") or {}
    app_metadata = payload.get("app_metadata") or {}
    return Principal(
        id=sub_uuid,
        email=payload.get("email"),
        name=metadata.get("full_name") or metadata.get("name"),
        provider="google" if app_metadata.get("provider") == "google" else "email",
        access_token=credentials.credentials,
    )


def get_session_resolver() -> SessionResolver:
    return SessionResolver(
        UserRepository(),
        VendorRepository(),
        self_heal=settings.SESSION_SELF_HEAL,
    )


def get_session_context(
    principal: Principal | None = Depends(get_principal),
    session: Session = Depends(get_session),
    resolver: SessionResolver = Depends(get_session_resolver),
) -> SessionContext:
    """
    Resolve the caller for this request.

    Every request carries its own auth state, so resolution runs once
    per request and the resulting SessionContext is injected wherever it
    is needed.
    """
    return resolver.on_auth_state_changed(session, principal)


def authorize(context: SessionContext, allowed_roles: frozenset[Role] | set[Role]) -> str | None:
    """
    Route-gate decision.

    Returns None when access is granted, otherwise the location the
    caller should be sent to instead.
    """
    if not context.is_authenticated:
        return LOGIN_ROUTE
    if allowed_roles and context.role not in allowed_roles:
        return landing_route(context.role)
    return None


def require_auth(context: SessionContext = Depends(get_session_context)) -> SessionContext:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): for guests and for sessions that could not be
        resolved (store failure).
    """
    if not context.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "redirect_to": LOGIN_ROUTE},
        )
    return context


def require_roles(*roles: Role):
    """
    Build a dependency that only lets the given roles through.

    Denied callers get 403 with `redirect_to` set to their own landing
    page.
    """
    allowed = frozenset(roles)

    def dependency(context: SessionContext = Depends(require_auth)) -> SessionContext:
        redirect_to = authorize(context, allowed)
        if redirect_to is not None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"message": "Insufficient role", "redirect_to": redirect_to},
            )
        return context

    return dependency


require_admin = require_roles(*ADMIN_ROLES)
require_staff = require_roles(*STAFF_ROLES)
require_partner = require_roles(Role.PARTNER)
