import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.roles import Role, VendorStatus, is_admin_like
from app.core.storage_utils import delete_from_storage, generate_filename, upload_to_storage
from app.models.user import User
from app.models.vendor import Vendor, VendorActivity
from app.repositories.query_gateway import CollectionGateway
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.query import Direction, Page, QueryFilter, list_request
from app.services.notification_service import notify_vendor_status
from app.services.session_service import SessionContext

logger = logging.getLogger(__name__)

# Allowed moves of the vendor state machine. Repeats of approved and
# suspended are permitted; rejected is terminal.
TRANSITIONS: dict[str, frozenset[str]] = {
    VendorStatus.PENDING_APPROVAL.value: frozenset(
        {VendorStatus.APPROVED.value, VendorStatus.REJECTED.value, VendorStatus.SUSPENDED.value}
    ),
    VendorStatus.APPROVED.value: frozenset(
        {VendorStatus.APPROVED.value, VendorStatus.SUSPENDED.value}
    ),
    VendorStatus.SUSPENDED.value: frozenset(
        {VendorStatus.SUSPENDED.value, VendorStatus.APPROVED.value}
    ),
    VendorStatus.REJECTED.value: frozenset(),
}

# --- Document config ---

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024  # 10MB per document

ALLOWED_DOCUMENT_CONTENT_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


class VendorService:
    """
    Vendor lifecycle: moderation state machine, audit trail, documents.

    Responsibilities:
      - keep vendors.status and users.status identical (one commit)
      - append an activity entry for every change (best effort)
      - notify the vendor by e-mail after moderation (best effort)

    Admin authorisation is the route gate's job; it is not re-checked here.
    """

    def __init__(
        self,
        repo: VendorRepository,
        user_repo: UserRepository,
        gateway: CollectionGateway,
    ):
        self.repo = repo
        self.user_repo = user_repo
        self.gateway = gateway

    # ----- Reads -----

    def get_vendor(self, session: Session, vendor_id: uuid.UUID) -> Vendor:
        vendor = self.repo.get_by_id(session, vendor_id)
        if not vendor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Vendor not found",
            )
        return vendor

    def list_vendors(
        self,
        session: Session,
        status_filter: str | None = None,
        search: str | None = None,
        sort: str = "created_at",
        direction: Direction = "desc",
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        filters = []
        if status_filter:
            filters.append(QueryFilter(field="status", operator="==", value=status_filter))
        request = list_request(
            self.repo.collection,
            filters=filters,
            search_field="business_name",
            search=search,
            sort=sort,
            direction=direction,
            page_size=page_size,
            cursor=cursor,
        )
        return self.gateway.query(session, request)

    def list_pending(
        self,
        session: Session,
        search: str | None = None,
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        """Vendors waiting for a decision, newest first."""
        return self.list_vendors(
            session,
            status_filter=VendorStatus.PENDING_APPROVAL.value,
            search=search,
            page_size=page_size,
            cursor=cursor,
        )

    def list_activity(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        self.get_vendor(session, vendor_id)
        request = list_request(
            self.repo.activity_collection,
            filters=[QueryFilter(field="vendor_id", operator="==", value=vendor_id)],
            sort="created_at",
            direction="desc",
            page_size=page_size,
            cursor=cursor,
        )
        return self.gateway.query(session, request)

    # ----- Activity -----

    def record_activity(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        activity_type: str,
        note: str | None = None,
        admin_id: uuid.UUID | None = None,
    ) -> VendorActivity | None:
        """
        Append an audit entry.

        A failed append does not undo the change it describes: it is
        logged and None is returned.
        """
        entry = VendorActivity(
            vendor_id=vendor_id,
            type=activity_type,
            note=note,
            admin_id=admin_id,
        )
        try:
            return self.repo.add_activity(session, entry)
        except Exception:
            logger.exception("Failed to append %s activity for vendor %s", activity_type, vendor_id)
            return None

    # ----- Status changes -----

    def change_vendor_status(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        new_status: str,
        acting_admin: SessionContext,
        reason: str | None = None,
        activity_type: str = "status_change",
        grant_partner: bool = False,
    ) -> Vendor:
        """
        Move a vendor to `new_status`.

        Vendor and identity records are written in one commit; on failure
        nothing is written and the error propagates. The activity entry
        and the e-mail follow, both best effort. Concurrent changes by two
        admins are last-write-wins.

        Raises:
            HTTPException(404): unknown vendor.
            HTTPException(409): transition not allowed from the current status.
        """
        vendor = self.get_vendor(session, vendor_id)
        previous = vendor.status

        if not can_transition(previous, new_status):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot change vendor status from '{previous}' to '{new_status}'",
            )

        user = self.user_repo.get_by_id(session, vendor.id)
        if user is None:
            # Legacy vendors without an identity row get one in the same commit.
            user = User(
                id=vendor.id,
                email=vendor.email,
                name=vendor.contact_person or vendor.business_name,
                role=Role.PARTNER.value,
            )

        now = datetime.now(timezone.utc)
        vendor.status = new_status
        vendor.moderator_id = acting_admin.principal_id
        vendor.moderator_name = acting_admin.display_name
        vendor.status_changed_at = now
        if new_status == VendorStatus.APPROVED.value:
            vendor.approved_at = now
        elif new_status == VendorStatus.REJECTED.value:
            vendor.rejected_at = now
            vendor.rejection_reason = reason
        elif new_status == VendorStatus.SUSPENDED.value:
            vendor.suspended_at = now
            vendor.suspension_reason = reason

        user.status = new_status
        if grant_partner:
            user.role = Role.PARTNER.value

        try:
            vendor = self.repo.save_with_identity(session, vendor, user)
        except Exception:
            logger.exception("Status change %s -> %s failed for vendor %s", previous, new_status, vendor_id)
            raise

        logger.info(
            "Vendor %s: %s -> %s by %s",
            vendor_id,
            previous,
            new_status,
            acting_admin.principal_id,
        )

        note = f"Status changed from {previous} to {new_status}"
        if reason:
            note = f"{note}: {reason}"
        self.record_activity(session, vendor.id, activity_type, note, acting_admin.principal_id)

        notify_vendor_status(vendor, new_status, reason)
        return vendor

    def approve(self, session: Session, vendor_id: uuid.UUID, acting_admin: SessionContext) -> Vendor:
        return self.change_vendor_status(
            session,
            vendor_id,
            VendorStatus.APPROVED.value,
            acting_admin,
            activity_type="approved",
            grant_partner=True,
        )

    def reject(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        acting_admin: SessionContext,
        reason: str | None = None,
    ) -> Vendor:
        return self.change_vendor_status(
            session,
            vendor_id,
            VendorStatus.REJECTED.value,
            acting_admin,
            reason=reason,
            activity_type="rejected",
        )

    def suspend(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        acting_admin: SessionContext,
        reason: str | None = None,
    ) -> Vendor:
        return self.change_vendor_status(
            session,
            vendor_id,
            VendorStatus.SUSPENDED.value,
            acting_admin,
            reason=reason,
            activity_type="suspended",
        )

    # ----- Documents -----

    @staticmethod
    def _validate_and_get_ext(content_type: str, file_bytes: bytes) -> str:
        if content_type not in ALLOWED_DOCUMENT_CONTENT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Unsupported document type. Allowed: PDF, JPEG, PNG.",
            )

        if not file_bytes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Empty file.",
            )

        if len(file_bytes) > MAX_DOCUMENT_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="Document too large (max 10MB).",
            )

        return ALLOWED_DOCUMENT_CONTENT_TYPES[content_type]

    def add_document(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        caller: SessionContext,
        filename: str,
        content_type: str,
        file_bytes: bytes,
    ) -> Vendor:
        """
        Upload a business document and attach it to the vendor.

        Path pattern:
            vendors/<vendor_id>/documents/<uuid>.<ext>

        Only the vendor itself or an admin may upload.
        """
        vendor = self.get_vendor(session, vendor_id)
        is_admin = is_admin_like(caller.role)
        if caller.principal_id != vendor.id and not is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not allowed to upload documents for this vendor",
            )

        ext = self._validate_and_get_ext(content_type, file_bytes)
        path = f"vendors/{vendor.id}/documents/{generate_filename(ext)}"
        url = upload_to_storage(path, file_bytes, content_type)

        # JSON columns only persist on reassignment.
        vendor.documents = [
            *vendor.documents,
            {"name": filename or path.rsplit("/", 1)[-1], "type": content_type, "url": url},
        ]
        try:
            vendor = self.repo.update(session, vendor)
        except Exception:
            session.rollback()
            try:
                delete_from_storage(path)
            except Exception:
                logger.warning("Could not remove orphaned upload %s", path)
            raise

        self.record_activity(
            session,
            vendor.id,
            "document_uploaded",
            f"Uploaded {filename}",
            caller.principal_id if is_admin else None,
        )
        return vendor
