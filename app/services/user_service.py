# app/services/user_service.py
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.user import User
from app.repositories.query_gateway import CollectionGateway
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.query import Direction, Page, QueryFilter, list_request
from app.schemas.user import UserStatusUpdate, UserUpdate
from app.services.session_service import SessionContext


class UserService:
    """
    Business logic for identity records.

    Responsibilities:
      - enforce app rules (no email change, vendor status belongs to the
        vendor lifecycle)
      - orchestrate repository operations
      - map domain errors to HTTP errors
    """

    def __init__(
        self,
        repo: UserRepository,
        vendor_repo: VendorRepository,
        gateway: CollectionGateway,
    ):
        self.repo = repo
        self.vendor_repo = vendor_repo
        self.gateway = gateway

    # ----- Self profile -----

    def get_me(self, session: Session, context: SessionContext) -> User:
        """
        Return the caller's identity record.

        Raises:
            HTTPException(404): when the session was synthesized without a
            stored record (self-heal disabled).
        """
        user = self.repo.get_by_id(session, context.principal_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profile not found",
            )
        return user

    def update_me(
        self,
        session: Session,
        context: SessionContext,
        payload: UserUpdate,
    ) -> User:
        """
        Partial update for profile edits.
        Currently, only `name` is editable.
        """
        user = self.get_me(session, context)
        if payload.name is not None:
            user.name = payload.name

        return self.repo.update(session, user)

    # ----- Admin operations -----

    def list_users(
        self,
        session: Session,
        role: str | None = None,
        status_filter: str | None = None,
        search: str | None = None,
        sort: str = "created_at",
        direction: Direction = "desc",
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        """List identity records through the query gateway (admin only)."""
        filters = []
        if role:
            filters.append(QueryFilter(field="role", operator="==", value=role))
        if status_filter:
            filters.append(QueryFilter(field="status", operator="==", value=status_filter))
        request = list_request(
            self.repo.collection,
            filters=filters,
            search_field="email",
            search=search.lower() if search else None,
            sort=sort,
            direction=direction,
            page_size=page_size,
            cursor=cursor,
        )
        return self.gateway.query(session, request)

    def get_user(self, session: Session, user_id: uuid.UUID) -> User:
        """
        Get a user by id (admin only).

        Raises:
            HTTPException(404): if not found.
        """
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    def update_status(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: UserStatusUpdate,
    ) -> User:
        """
        Change the status of a non-vendor account (admin only).

        Raises:
            HTTPException(409): the account has a vendor record; its status
            must change through the vendor endpoints so both records stay
            in step.
        """
        user = self.get_user(session, user_id)
        if self.vendor_repo.get_by_id(session, user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Vendor accounts change status through /vendors/{id}/status",
            )
        user.status = payload.status
        return self.repo.update(session, user)
