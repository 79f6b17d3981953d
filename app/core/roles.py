from enum import Enum


class Role(str, Enum):
    """
    Application roles stored on the identity record.

    "guest" is not a role: it is the absence of an authenticated principal.
    """

    CUSTOMER = "customer"
    PARTNER = "partner"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class UserStatus(str, Enum):
    """Status of an identity record (mirrors the vendor status for partners)."""

    ACTIVE = "Active"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class VendorStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
STAFF_ROLES = ADMIN_ROLES | {Role.MANAGER}

LOGIN_ROUTE = "/login"
VENDOR_PENDING_ROUTE = "/vendor/pending"

# Default landing location per role. Anything not listed lands on the
# customer dashboard.
LANDING_ROUTES: dict[Role, str] = {
    Role.ADMIN: "/admin",
    Role.SUPER_ADMIN: "/admin",
    Role.MANAGER: "/manager",
    Role.PARTNER: "/vendor",
}
CUSTOMER_ROUTE = "/dashboard"


def is_admin_like(role: Role | str | None) -> bool:
    """True for admin and super_admin."""
    return role is not None and coerce_role(role) in ADMIN_ROLES


def coerce_role(raw: str | None) -> Role:
    """
    Parse a stored role string, falling back to customer for unknown values.

    The "vendor" alias predates the partner role and is still present in
    some older records.
    """
    if raw == "vendor":
        return Role.PARTNER
    try:
        return Role(raw)
    except ValueError:
        return Role.CUSTOMER


def landing_route(role: Role | str | None) -> str:
    return LANDING_ROUTES.get(coerce_role(role) if role else Role.CUSTOMER, CUSTOMER_ROUTE)


def login_destination(role: Role | str | None, status: str | None) -> str:
    """
    Where to send a principal right after sign-in.

    Partners whose vendor account is not approved yet wait on the
    pending page instead of the vendor dashboard.
    """
    if coerce_role(role) is Role.PARTNER and status != VendorStatus.APPROVED.value:
        return VENDOR_PENDING_ROUTE
    return landing_route(role)
