import uuid
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from sqlmodel import select

from app.core.roles import Role
from app.models.user import User
from app.models.vendor import Vendor, VendorActivity
from app.repositories.query_gateway import CollectionGateway
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.services.session_service import SessionContext, SessionState
from app.services.vendor_service import VendorService, can_transition
from tests.conftest import make_token


@pytest.fixture
def service():
    return VendorService(VendorRepository(), UserRepository(), CollectionGateway())


@pytest.fixture
def acting_admin():
    return SessionContext(
        state=SessionState.RESOLVED,
        principal_id=uuid.uuid4(),
        email="ada@example.com",
        name="Ada Admin",
        role=Role.ADMIN,
        status="Active",
        source="users",
    )


def activity_for(session, vendor_id) -> list[VendorActivity]:
    stmt = select(VendorActivity).where(VendorActivity.vendor_id == vendor_id)
    return list(session.exec(stmt).all())


class TestStateMachine:
    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            ("pending_approval", "approved", True),
            ("pending_approval", "rejected", True),
            ("pending_approval", "suspended", True),
            ("approved", "approved", True),
            ("approved", "suspended", True),
            ("suspended", "approved", True),
            ("suspended", "suspended", True),
            ("approved", "rejected", False),
            ("approved", "pending_approval", False),
            ("rejected", "approved", False),
            ("rejected", "rejected", False),
            ("pending_approval", "pending_approval", False),
        ],
    )
    def test_transitions(self, current, new, allowed):
        assert can_transition(current, new) is allowed


class TestStatusChanges:
    """Vendor and identity records move together."""

    def test_approve_updates_both_records_and_logs(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        with patch("app.services.vendor_service.notify_vendor_status") as notify:
            result = service.approve(session, vendor.id, acting_admin)

        user = session.get(User, vendor.id)
        assert result.status == "approved"
        assert user.status == result.status
        assert user.role == "partner"
        assert result.moderator_id == acting_admin.principal_id
        assert result.moderator_name == "Ada Admin"
        assert result.approved_at is not None
        assert result.status_changed_at is not None

        entries = activity_for(session, vendor.id)
        assert [e.type for e in entries] == ["approved"]
        assert entries[0].admin_id == acting_admin.principal_id
        notify.assert_called_once_with(result, "approved", None)

    def test_approve_twice_appends_two_entries(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        service.approve(session, vendor.id, acting_admin)
        again = service.approve(session, vendor.id, acting_admin)

        assert again.status == "approved"
        assert session.get(User, vendor.id).status == "approved"
        assert [e.type for e in activity_for(session, vendor.id)] == ["approved", "approved"]

    def test_reject_records_reason(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        result = service.reject(session, vendor.id, acting_admin, reason="Missing licence")

        assert result.status == "rejected"
        assert result.rejection_reason == "Missing licence"
        assert result.rejected_at is not None
        assert session.get(User, vendor.id).status == "rejected"
        (entry,) = activity_for(session, vendor.id)
        assert entry.type == "rejected"
        assert "Missing licence" in entry.note

    def test_suspend_then_reinstate(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor(status="approved")

        suspended = service.suspend(session, vendor.id, acting_admin, reason="Late deliveries")
        assert suspended.status == "suspended"
        assert suspended.suspension_reason == "Late deliveries"
        assert session.get(User, vendor.id).status == "suspended"

        reinstated = service.approve(session, vendor.id, acting_admin)
        assert reinstated.status == "approved"
        assert session.get(User, vendor.id).status == "approved"
        assert [e.type for e in activity_for(session, vendor.id)] == ["suspended", "approved"]

    def test_rejected_is_terminal(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor(status="rejected")

        with pytest.raises(HTTPException) as exc:
            service.approve(session, vendor.id, acting_admin)

        assert exc.value.status_code == 409
        assert session.get(Vendor, vendor.id).status == "rejected"
        assert activity_for(session, vendor.id) == []

    def test_unknown_vendor(self, service, session, acting_admin):
        with pytest.raises(HTTPException) as exc:
            service.approve(session, uuid.uuid4(), acting_admin)
        assert exc.value.status_code == 404

    def test_missing_identity_record_is_created(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor(with_user=False)

        service.approve(session, vendor.id, acting_admin)

        user = session.get(User, vendor.id)
        assert user is not None
        assert user.status == "approved"
        assert user.role == "partner"
        assert user.email == vendor.email

    def test_failed_commit_writes_nothing(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        with patch.object(session, "commit", side_effect=RuntimeError("store unavailable")):
            with pytest.raises(RuntimeError):
                service.reject(session, vendor.id, acting_admin, reason="x")

        assert session.get(Vendor, vendor.id).status == "pending_approval"
        assert session.get(User, vendor.id).status == "pending_approval"
        assert activity_for(session, vendor.id) == []

    def test_activity_failure_does_not_undo_change(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        with patch.object(service.repo, "add_activity", side_effect=RuntimeError("boom")):
            result = service.approve(session, vendor.id, acting_admin)

        assert result.status == "approved"
        assert session.get(User, vendor.id).status == "approved"
        assert activity_for(session, vendor.id) == []

    def test_email_failure_is_swallowed(self, service, session, make_vendor, acting_admin):
        vendor = make_vendor()

        with patch("app.services.notification_service.smtp_configured", return_value=True), patch(
            "app.services.notification_service.send_email", side_effect=OSError("smtp down")
        ) as send:
            result = service.approve(session, vendor.id, acting_admin)

        assert result.status == "approved"
        send.assert_called_once()


class TestDocuments:
    def test_owner_uploads_document(self, client, session, make_vendor):
        vendor = make_vendor(status="approved")
        headers = {"Authorization": f"Bearer {make_token(vendor.id, vendor.email)}"}

        with patch(
            "app.services.vendor_service.upload_to_storage",
            return_value="https://proj.supabase.co/storage/v1/object/public/vendor-documents/x.pdf",
        ) as upload:
            response = client.post(
                f"/api/v1/vendors/{vendor.id}/documents",
                files={"file": ("licence.pdf", b"%PDF-1.4 test", "application/pdf")},
                headers=headers,
            )

        assert response.status_code == 200, response.text
        docs = response.json()["documents"]
        assert docs == [
            {
                "name": "licence.pdf",
                "type": "application/pdf",
                "url": "https://proj.supabase.co/storage/v1/object/public/vendor-documents/x.pdf",
            }
        ]
        path = upload.call_args.args[0]
        assert path.startswith(f"vendors/{vendor.id}/documents/")
        assert path.endswith(".pdf")
        session.expire_all()
        assert [e.type for e in activity_for(session, vendor.id)] == ["document_uploaded"]

    def test_rejects_unsupported_type(self, client, make_vendor):
        vendor = make_vendor()
        headers = {"Authorization": f"Bearer {make_token(vendor.id, vendor.email)}"}

        response = client.post(
            f"/api/v1/vendors/{vendor.id}/documents",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=headers,
        )
        assert response.status_code == 400

    def test_other_users_cannot_upload(self, client, make_vendor, make_user):
        vendor = make_vendor()
        _, headers = make_user(role="partner", status="approved")

        response = client.post(
            f"/api/v1/vendors/{vendor.id}/documents",
            files={"file": ("licence.pdf", b"%PDF", "application/pdf")},
            headers=headers,
        )
        assert response.status_code == 403

    def test_failed_save_removes_upload(self, service, session, make_vendor):
        vendor = make_vendor()
        owner = SessionContext(
            state=SessionState.RESOLVED,
            principal_id=vendor.id,
            role=Role.PARTNER,
            status="pending_approval",
        )

        with patch("app.services.vendor_service.upload_to_storage", return_value="https://x/doc.png"), patch(
            "app.services.vendor_service.delete_from_storage"
        ) as delete, patch.object(service.repo, "update", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                service.add_document(session, vendor.id, owner, "logo.png", "image/png", b"\x89PNG")

        delete.assert_called_once()
        assert delete.call_args.args[0].startswith(f"vendors/{vendor.id}/documents/")


class TestVendorRoutes:
    """Moderation over HTTP, including the route gate."""

    def test_admin_approves(self, client, session, admin, make_vendor):
        vendor = make_vendor()
        _, headers = admin

        response = client.post(f"/api/v1/vendors/{vendor.id}/approve", headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        session.expire_all()
        assert session.get(User, vendor.id).status == "approved"

    def test_reject_with_reason_body(self, client, admin, make_vendor):
        vendor = make_vendor()
        _, headers = admin

        response = client.post(
            f"/api/v1/vendors/{vendor.id}/reject",
            json={"reason": "Incomplete documents"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Incomplete documents"

    def test_invalid_transition_is_409(self, client, admin, make_vendor):
        vendor = make_vendor(status="approved")
        _, headers = admin

        response = client.patch(
            f"/api/v1/vendors/{vendor.id}/status",
            json={"status": "pending_approval"},
            headers=headers,
        )
        assert response.status_code == 409

    def test_manager_cannot_moderate(self, client, make_user, make_vendor):
        vendor = make_vendor()
        _, headers = make_user(role="manager")

        response = client.post(f"/api/v1/vendors/{vendor.id}/approve", headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"]["redirect_to"] == "/manager"

    def test_guest_is_sent_to_login(self, client, make_vendor):
        vendor = make_vendor()

        response = client.post(f"/api/v1/vendors/{vendor.id}/approve")

        assert response.status_code == 401
        assert response.json()["detail"]["redirect_to"] == "/login"

    def test_pending_list_and_activity(self, client, admin, make_vendor):
        waiting = make_vendor("Waiting Farm")
        make_vendor("Approved Farm", status="approved")
        _, headers = admin

        response = client.get("/api/v1/vendors/pending", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert [row["business_name"] for row in body["data"]] == ["Waiting Farm"]
        assert body["has_more"] is False

        client.post(f"/api/v1/vendors/{waiting.id}/suspend", json={"reason": "audit"}, headers=headers)
        client.post(f"/api/v1/vendors/{waiting.id}/approve", headers=headers)

        response = client.get(f"/api/v1/vendors/{waiting.id}/activity", headers=headers)
        assert response.status_code == 200
        assert [row["type"] for row in response.json()["data"]] == ["approved", "suspended"]

    def test_partner_reads_own_record_only(self, client, make_vendor):
        own = make_vendor("Own Farm")
        other = make_vendor("Other Farm")
        headers = {"Authorization": f"Bearer {make_token(own.id, own.email)}"}

        assert client.get(f"/api/v1/vendors/{own.id}", headers=headers).status_code == 200
        assert client.get(f"/api/v1/vendors/{other.id}", headers=headers).status_code == 403
