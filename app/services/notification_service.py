import logging

from app.core.email_client import send_email, smtp_configured
from app.models.vendor import Vendor

logger = logging.getLogger(__name__)

_SUBJECTS = {
    "approved": "Your vendor account has been approved",
    "rejected": "Update on your vendor application",
    "suspended": "Your vendor account has been suspended",
}


def _text_body(vendor: Vendor, status: str, reason: str | None) -> str:
    greeting = f"Hello {vendor.contact_person or vendor.business_name},"
    if status == "approved":
        lines = [
            greeting,
            "",
            f"{vendor.business_name} is now an approved vendor on Viridian Marketplace.",
            "You can sign in and start listing products from your vendor dashboard.",
        ]
    elif status == "rejected":
        lines = [
            greeting,
            "",
            f"We were unable to approve {vendor.business_name} at this time.",
        ]
    elif status == "suspended":
        lines = [
            greeting,
            "",
            f"The vendor account for {vendor.business_name} has been suspended.",
        ]
    else:
        lines = [greeting, "", f"Your vendor account status is now: {status}."]

    if reason:
        lines += ["", f"Reason: {reason}"]
    lines += ["", "Viridian Marketplace"]
    return "\n".join(lines)


def notify_vendor_status(vendor: Vendor, status: str, reason: str | None = None) -> bool:
    """
    Tell the vendor about a moderation decision.

    Best effort: any failure is logged and reported as False, never raised.
    """
    if not smtp_configured():
        logger.info("SMTP not configured; skipping status e-mail to %s", vendor.email)
        return False

    subject = _SUBJECTS.get(status, "Your vendor account status has changed")
    try:
        send_email(vendor.email, subject, _text_body(vendor, status, reason))
    except Exception:
        logger.exception("Failed to send status e-mail to %s", vendor.email)
        return False
    return True
