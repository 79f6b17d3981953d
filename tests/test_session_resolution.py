import uuid
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from app.core.auth import authorize
from app.core.roles import (
    ADMIN_ROLES,
    Role,
    coerce_role,
    is_admin_like,
    landing_route,
    login_destination,
)
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.services.session_service import (
    Principal,
    SessionContext,
    SessionResolver,
    SessionState,
    session_read,
)
from tests.conftest import make_token


class RacingUserRepository(UserRepository):
    """Another request inserts the same principal right after our first lookup misses."""

    def __init__(self, engine):
        self.engine = engine
        self.raced = False

    def get_by_id(self, session, user_id):
        found = super().get_by_id(session, user_id)
        if found is None and not self.raced:
            self.raced = True
            with Session(self.engine) as other:
                other.add(
                    User(
                        id=user_id,
                        email="twin@example.com",
                        name="Twin From Other Tab",
                        role="customer",
                        status="Active",
                    )
                )
                other.commit()
        return found


def resolver(self_heal: bool = True) -> SessionResolver:
    return SessionResolver(UserRepository(), VendorRepository(), self_heal=self_heal)


class TestResolutionOrder:
    """users first, then vendors, then self-heal / default."""

    def test_no_principal_is_anonymous(self, session):
        context = resolver().on_auth_state_changed(session, None)

        assert context.state is SessionState.ANONYMOUS
        assert context.role is None
        assert not context.is_authenticated

    def test_identity_record_wins(self, session, make_user):
        user, _ = make_user(role="manager", name="Mona")

        context = resolver().on_auth_state_changed(session, Principal(id=user.id, email=user.email))

        assert context.state is SessionState.RESOLVED
        assert context.role is Role.MANAGER
        assert context.source == "users"
        assert context.name == "Mona"

    def test_vendor_only_principal_is_partner(self, session, make_vendor):
        vendor = make_vendor(status="suspended", with_user=False)

        context = resolver().on_auth_state_changed(session, Principal(id=vendor.id, email=vendor.email))

        assert context.role is Role.PARTNER
        assert context.status == "suspended"
        assert context.source == "vendors"
        assert session.get(User, vendor.id) is None

    def test_unknown_principal_is_self_healed(self, session):
        principal = Principal(id=uuid.uuid4(), email="newbie@example.com")

        context = resolver().on_auth_state_changed(session, principal)

        assert context.role is Role.CUSTOMER
        assert context.status == "Active"
        assert context.source == "created"
        user = session.get(User, principal.id)
        assert user.role == "customer"
        assert user.name == "newbie"

    def test_default_variant_writes_nothing(self, session):
        principal = Principal(id=uuid.uuid4(), email="ghost@example.com")

        context = resolver(self_heal=False).on_auth_state_changed(session, principal)

        assert context.role is Role.CUSTOMER
        assert context.status == "Active"
        assert context.source == "default"
        assert session.get(User, principal.id) is None

    def test_legacy_vendor_role_alias(self, session, make_user):
        user, _ = make_user(role="vendor")

        context = resolver().on_auth_state_changed(session, Principal(id=user.id))

        assert context.role is Role.PARTNER

    def test_store_failure_degrades_to_anonymous(self, session):
        res = resolver()
        with patch.object(res.user_repo, "get_by_id", side_effect=RuntimeError("store down")):
            context = res.on_auth_state_changed(session, Principal(id=uuid.uuid4()))

        assert context.state is SessionState.ANONYMOUS
        assert context.principal_id is None

    def test_concurrent_self_heal_reads_the_winner(self, engine, session):
        principal = Principal(id=uuid.uuid4(), email="twin@example.com")
        res = SessionResolver(RacingUserRepository(engine), VendorRepository())

        context = res.on_auth_state_changed(session, principal)

        assert context.state is SessionState.RESOLVED
        assert context.role is Role.CUSTOMER
        assert context.source == "users"
        assert context.name == "Twin From Other Tab"
        assert len(session.exec(select(User).where(User.id == principal.id)).all()) == 1

    def test_close_clears_context(self, session, make_user):
        user, _ = make_user()
        context = resolver().on_auth_state_changed(session, Principal(id=user.id, access_token="t"))

        context.close()

        assert context.state is SessionState.ANONYMOUS
        assert context.principal_id is None
        assert context.access_token is None
        assert context.role is None


class TestRoles:
    def test_admin_like(self):
        assert is_admin_like(Role.ADMIN)
        assert is_admin_like("super_admin")
        assert not is_admin_like(Role.MANAGER)
        assert not is_admin_like(None)

    def test_coerce_role_falls_back_to_customer(self):
        assert coerce_role("super_admin") is Role.SUPER_ADMIN
        assert coerce_role("wizard") is Role.CUSTOMER
        assert coerce_role(None) is Role.CUSTOMER

    @pytest.mark.parametrize(
        "role,route",
        [
            (Role.ADMIN, "/admin"),
            (Role.SUPER_ADMIN, "/admin"),
            (Role.MANAGER, "/manager"),
            (Role.PARTNER, "/vendor"),
            (Role.CUSTOMER, "/dashboard"),
            (None, "/dashboard"),
        ],
    )
    def test_landing_routes(self, role, route):
        assert landing_route(role) == route

    def test_pending_partner_waits(self):
        assert login_destination(Role.PARTNER, "pending_approval") == "/vendor/pending"
        assert login_destination(Role.PARTNER, "approved") == "/vendor"
        assert login_destination(Role.ADMIN, "Active") == "/admin"


class TestAuthorize:
    def _context(self, role):
        return SessionContext(state=SessionState.RESOLVED, principal_id=uuid.uuid4(), role=role)

    def test_guest_goes_to_login(self):
        assert authorize(SessionContext(state=SessionState.ANONYMOUS), ADMIN_ROLES) == "/login"

    def test_allowed_role_passes(self):
        assert authorize(self._context(Role.SUPER_ADMIN), ADMIN_ROLES) is None

    def test_denied_role_goes_home(self):
        assert authorize(self._context(Role.PARTNER), ADMIN_ROLES) == "/vendor"
        assert authorize(self._context(Role.CUSTOMER), ADMIN_ROLES) == "/dashboard"

    def test_empty_allow_list_only_needs_auth(self):
        assert authorize(self._context(Role.CUSTOMER), frozenset()) is None


class TestSessionEndpoint:
    def test_guest(self, client):
        response = client.get("/api/v1/auth/session")

        assert response.status_code == 200
        assert response.json()["state"] == "anonymous"
        assert response.json()["landing_route"] == "/login"

    def test_pending_vendor(self, client, make_vendor):
        vendor = make_vendor()
        headers = {"Authorization": f"Bearer {make_token(vendor.id, vendor.email)}"}

        body = client.get("/api/v1/auth/session", headers=headers).json()

        assert body["role"] == "partner"
        assert body["status"] == "pending_approval"
        assert body["landing_route"] == "/vendor/pending"

    def test_first_request_self_heals(self, client, session):
        principal_id = uuid.uuid4()
        headers = {"Authorization": f"Bearer {make_token(principal_id, 'fresh@example.com')}"}

        body = client.get("/api/v1/auth/session", headers=headers).json()

        assert body["source"] == "created"
        assert body["landing_route"] == "/dashboard"
        session.expire_all()
        assert session.get(User, principal_id) is not None

    def test_bad_token(self, client):
        response = client.get(
            "/api/v1/auth/session",
            headers={"Authorization": "Bearer not.a.jwt"},
        )
        assert response.status_code == 401
        assert response.json()["detail"]["redirect_to"] == "/login"

    def test_session_read_of_anonymous(self):
        view = session_read(SessionContext(state=SessionState.ANONYMOUS))
        assert view.principal_id is None
        assert view.landing_route == "/login"
