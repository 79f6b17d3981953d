import logging
import math
from collections.abc import Callable
from contextlib import ExitStack

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.identity import IdentityError, IdentityProvider
from app.core.rate_limit import LoginThrottle
from app.core.roles import Role, UserStatus, VendorStatus
from app.models.user import User
from app.models.vendor import Vendor
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.auth import LoginRequest, LoginResponse, SignupRequest, VendorSignupRequest
from app.services.session_service import (
    Principal,
    SessionContext,
    SessionResolver,
    default_name_from_email,
    session_read,
)

logger = logging.getLogger(__name__)


def _compensate(label: str, action: Callable, *args) -> None:
    """Run one undo step; its own failure is logged and never raised."""
    try:
        action(*args)
    except Exception:
        logger.exception("Signup compensation failed: %s", label)


class RegistrationService:
    """
    Self-signup, sign-in and sign-out.

    Signup is a sequence of steps against two systems (identity provider,
    then the store). Each completed step registers its undo on an
    ExitStack; when a later step fails the undos run in reverse order and
    the original error propagates.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        vendor_repo: VendorRepository,
        throttle: LoginThrottle,
    ):
        self.user_repo = user_repo
        self.vendor_repo = vendor_repo
        self.throttle = throttle

    # ----- Helpers -----

    def _ensure_email_free(self, session: Session, email: str) -> None:
        if self.user_repo.get_by_email(session, email) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists.",
            )

    @staticmethod
    def _create_credential(provider: IdentityProvider, email: str, password: str, name: str):
        try:
            return provider.create_credential(email, password, name)
        except IdentityError as exc:
            code = (
                status.HTTP_409_CONFLICT
                if exc.code in ("email_exists", "user_already_exists")
                else status.HTTP_400_BAD_REQUEST
            )
            raise HTTPException(status_code=code, detail=exc.message)

    # ----- Signup -----

    def signup_customer(
        self,
        session: Session,
        provider: IdentityProvider,
        payload: SignupRequest,
    ) -> User:
        email = str(payload.email).lower()
        self._ensure_email_free(session, email)

        with ExitStack() as undo:
            principal_id = self._create_credential(provider, email, payload.password, payload.name)
            undo.callback(_compensate, "delete credential", provider.delete_credential, principal_id)
            undo.callback(_compensate, "roll back session", session.rollback)

            user = self.user_repo.create(
                session,
                User(
                    id=principal_id,
                    email=email,
                    name=payload.name,
                    role=Role.CUSTOMER.value,
                    status=UserStatus.ACTIVE.value,
                ),
            )
            undo.pop_all()

        logger.info("Customer signup %s (%s)", principal_id, email)
        return user

    def signup_vendor(
        self,
        session: Session,
        provider: IdentityProvider,
        payload: VendorSignupRequest,
    ) -> Vendor:
        """
        Create credential, identity record and vendor record.

        Both records start in pending_approval; the identity record gets
        role partner. Records are written in one commit after the
        credential exists.
        """
        email = str(payload.email).lower()
        self._ensure_email_free(session, email)

        with ExitStack() as undo:
            principal_id = self._create_credential(
                provider, email, payload.password, payload.contact_person
            )
            undo.callback(_compensate, "delete credential", provider.delete_credential, principal_id)

            user = User(
                id=principal_id,
                email=email,
                name=payload.contact_person,
                role=Role.PARTNER.value,
                status=UserStatus.PENDING_APPROVAL.value,
            )
            vendor = Vendor(
                id=principal_id,
                business_name=payload.business_name,
                contact_person=payload.contact_person,
                email=email,
                phone=payload.phone,
                address=payload.address,
                city=payload.city,
                state=payload.state,
                business_type=payload.business_type,
                categories=payload.categories,
                status=VendorStatus.PENDING_APPROVAL.value,
            )
            vendor = self.vendor_repo.save_with_identity(session, vendor, user)
            undo.pop_all()

        logger.info("Vendor signup %s (%s)", principal_id, payload.business_name)
        return vendor

    # ----- Sign-in / sign-out -----

    def login(
        self,
        session: Session,
        provider: IdentityProvider,
        resolver: SessionResolver,
        payload: LoginRequest,
    ) -> LoginResponse:
        """
        Password sign-in followed by session resolution.

        Raises:
            HTTPException(429): too many recent failures for this email.
            HTTPException(401): bad credentials, or the session could not
                be resolved.
        """
        email = str(payload.email).lower()
        limiter = self.throttle.for_email(email)
        if limiter.is_blocked():
            retry_after = math.ceil(limiter.remaining_cooldown())
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": "Too many failed attempts. Please try again later.",
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        try:
            tokens = provider.sign_in(email, payload.password)
        except IdentityError as exc:
            if exc.code != "network":
                limiter.record()
            logger.info("Sign-in failed for %s (%s)", email, exc.code)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)

        limiter.reset()
        principal = Principal(
            id=tokens.principal_id,
            email=tokens.email,
            name=tokens.name or default_name_from_email(tokens.email),
            access_token=tokens.access_token,
        )
        context = resolver.on_auth_state_changed(session, principal)
        if not context.is_authenticated:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not load your account. Please sign in again.",
            )

        view = session_read(context)
        return LoginResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            session=view,
            redirect_to=view.landing_route,
        )

    def logout(self, provider: IdentityProvider, context: SessionContext) -> None:
        """Revoke the token (best effort) and close the session."""
        if context.access_token:
            try:
                provider.sign_out(context.access_token)
            except IdentityError as exc:
                logger.warning("Sign-out failed for %s: %s", context.principal_id, exc.code)
        context.close()

    def request_password_reset(self, provider: IdentityProvider, email: str) -> None:
        """
        Ask the provider to e-mail a reset link.

        Unknown addresses are not reported, only provider throttling is.
        """
        try:
            provider.send_password_reset(email.lower())
        except IdentityError as exc:
            if exc.code in ("over_email_send_rate_limit", "over_request_rate_limit"):
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=exc.message,
                )
            logger.warning("Password reset for %s failed: %s", email, exc.code)
