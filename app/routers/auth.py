# app/routers/auth.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import get_session_context, get_session_resolver, require_auth
from app.core.config import get_settings
from app.core.identity import IdentityProvider, get_identity_provider
from app.core.rate_limit import LoginThrottle
from app.database import get_session
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    PasswordResetRequest,
    SignupRequest,
    VendorSignupRequest,
)
from app.schemas.user import SessionRead, UserRead
from app.schemas.vendor import VendorRead
from app.services.registration_service import RegistrationService
from app.services.session_service import SessionContext, SessionResolver, session_read

settings = get_settings()

router = APIRouter(prefix="/auth", tags=["Auth"])

throttle = LoginThrottle(settings.LOGIN_MAX_ATTEMPTS, settings.LOGIN_WINDOW_SECONDS)
service = RegistrationService(UserRepository(), VendorRepository(), throttle)


@router.post("/signup", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    session: Session = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """
    Customer self-signup.

    Creates the Supabase credential and the `customer` identity record.
    If the record cannot be written the credential is deleted again.
    """
    return service.signup_customer(session, provider, payload)


@router.post("/signup/vendor", response_model=VendorRead, status_code=status.HTTP_201_CREATED)
def signup_vendor(
    payload: VendorSignupRequest,
    session: Session = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """
    Vendor / partner self-signup.

    The account starts in `pending_approval` and waits for an admin.
    """
    return service.signup_vendor(session, provider, payload)


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    resolver: SessionResolver = Depends(get_session_resolver),
):
    """
    Email + password sign-in.

    Returns the Supabase tokens, the resolved session and where the
    client should go next (`redirect_to`).
    """
    return service.login(session, provider, resolver, payload)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    context: SessionContext = Depends(require_auth),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    service.logout(provider, context)


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
def password_reset(
    payload: PasswordResetRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Always accepted; the link is only sent to known addresses."""
    service.request_password_reset(provider, str(payload.email))
    return {"message": "If an account exists for this email, a reset link has been sent."}


@router.get("/session", response_model=SessionRead)
def read_session(context: SessionContext = Depends(get_session_context)):
    """
    The caller's resolved session.

    Guests get `anonymous` with `landing_route="/login"`.
    """
    return session_read(context)
