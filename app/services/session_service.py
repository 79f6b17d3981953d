import logging
import uuid
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.core.roles import LOGIN_ROUTE, Role, UserStatus, coerce_role, login_destination
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.user import SessionRead

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNKNOWN = "unknown"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    ANONYMOUS = "anonymous"


@dataclass
class Principal:
    """An authenticated identity as issued by the identity provider."""

    id: uuid.UUID
    email: str | None = None
    name: str | None = None
    provider: str = "email"
    access_token: str | None = None


@dataclass
class SessionContext:
    """
    Denormalized view of "who is calling" for one request.

    Created by SessionResolver on every auth state change and handed to
    routes and services explicitly (FastAPI dependency). `close()` is the
    sign-out teardown.

    source tells which lookup decided the role:
      users | vendors | created (self-healed) | default (synthesized)
    """

    state: SessionState = SessionState.UNKNOWN
    principal_id: uuid.UUID | None = None
    email: str | None = None
    name: str | None = None
    role: Role | None = None
    status: str | None = None
    source: str | None = None
    access_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.RESOLVED

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Admin"

    def close(self) -> None:
        """Drop everything cached about the principal."""
        self.state = SessionState.ANONYMOUS
        self.principal_id = None
        self.email = None
        self.name = None
        self.role = None
        self.status = None
        self.source = None
        self.access_token = None


def session_read(context: SessionContext) -> SessionRead:
    """Client view of a session, with where the route gate should land it."""
    if not context.is_authenticated:
        return SessionRead(state=context.state.value, landing_route=LOGIN_ROUTE)
    return SessionRead(
        state=context.state.value,
        principal_id=context.principal_id,
        email=context.email,
        name=context.name,
        role=context.role.value if context.role else None,
        status=context.status,
        source=context.source,
        landing_route=login_destination(context.role, context.status),
    )


def default_name_from_email(email: str | None) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if not email:
        return "Unnamed User"
    if "@" in email:
        return email.split("@", 1)[0]
    return email


class SessionResolver:
    """
    Resolve an authenticated principal to an application role.

    Lookup chain, first hit wins:
      1. users/{id}    -> stored role + status
      2. vendors/{id}  -> partner + vendor status
      3. self_heal     -> create users/{id} as customer / Active
         otherwise     -> synthesized customer / Active, nothing written

    Any store failure degrades the session to anonymous (logged); the
    caller then has to authenticate again.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        vendor_repo: VendorRepository,
        self_heal: bool = True,
    ):
        self.user_repo = user_repo
        self.vendor_repo = vendor_repo
        self.self_heal = self_heal

    def on_auth_state_changed(
        self,
        session: Session,
        principal: Principal | None,
        context: SessionContext | None = None,
    ) -> SessionContext:
        context = context or SessionContext()

        if principal is None:
            context.close()
            return context

        context.state = SessionState.RESOLVING
        try:
            self._resolve(session, principal, context)
        except Exception:
            logger.exception("Session resolution failed for %s", principal.id)
            session.rollback()
            context.close()
            return context

        context.principal_id = principal.id
        context.access_token = principal.access_token
        context.state = SessionState.RESOLVED
        return context

    def _resolve(self, session: Session, principal: Principal, context: SessionContext) -> None:
        user = self.user_repo.get_by_id(session, principal.id)
        if user is not None:
            self._fill(context, user.email, user.name, coerce_role(user.role), user.status, "users")
            return

        vendor = self.vendor_repo.get_by_id(session, principal.id)
        if vendor is not None:
            self._fill(
                context,
                vendor.email,
                vendor.contact_person or vendor.business_name,
                Role.PARTNER,
                vendor.status,
                "vendors",
            )
            return

        if self.self_heal:
            user, source = self._heal(session, principal)
            self._fill(context, user.email, user.name, coerce_role(user.role), user.status, source)
            return

        self._fill(
            context,
            principal.email,
            principal.name or default_name_from_email(principal.email),
            Role.CUSTOMER,
            UserStatus.ACTIVE.value,
            "default",
        )

    def _heal(self, session: Session, principal: Principal) -> tuple[User, str]:
        """
        Create users/{id} for a principal seen for the first time.

        Parallel first requests race on the insert; the loser reads the
        winner's row instead of failing.
        """
        try:
            user = self.user_repo.create(
                session,
                User(
                    id=principal.id,
                    email=principal.email or f"{principal.id}@unknown.invalid",
                    name=principal.name or default_name_from_email(principal.email),
                    role=Role.CUSTOMER.value,
                    status=UserStatus.ACTIVE.value,
                    provider=principal.provider,
                ),
            )
        except IntegrityError:
            session.rollback()
            user = self.user_repo.get_by_id(session, principal.id)
            if user is None:
                raise
            logger.info("Identity record for %s was created concurrently", principal.id)
            return user, "users"

        logger.info("Created missing identity record for %s", principal.id)
        return user, "created"

    @staticmethod
    def _fill(
        context: SessionContext,
        email: str | None,
        name: str | None,
        role: Role,
        status: str,
        source: str,
    ) -> None:
        context.email = email
        context.name = name
        context.role = role
        context.status = status
        context.source = source
