import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.partnership import Partnership
from app.repositories.partnership_repo import PartnershipRepository
from app.repositories.query_gateway import CollectionGateway
from app.schemas.partnership import PartnershipCreate, PartnershipStatusUpdate
from app.schemas.query import Direction, Page, QueryFilter, list_request
from app.services.session_service import SessionContext

logger = logging.getLogger(__name__)


class PartnershipService:
    """Partnership inquiries: public submission, staff review."""

    def __init__(self, repo: PartnershipRepository, gateway: CollectionGateway):
        self.repo = repo
        self.gateway = gateway

    def submit(
        self,
        session: Session,
        payload: PartnershipCreate,
        context: SessionContext | None = None,
    ) -> Partnership:
        """
        Store a new inquiry with status 'Pending'.

        Anonymous visitors are allowed; signed-in visitors are linked by
        user_id.
        """
        user_id = None
        if context is not None and context.is_authenticated and context.source != "default":
            user_id = context.principal_id

        partnership = Partnership(
            business_name=payload.business_name,
            contact_person=payload.contact_person,
            email=str(payload.email),
            phone=payload.phone,
            tier=payload.tier,
            message=payload.message,
            user_id=user_id,
            status="Pending",
        )
        try:
            partnership = self.repo.create(session, partnership)
        except Exception:
            session.rollback()
            logger.exception("Failed to store partnership inquiry from %s", payload.email)
            raise
        logger.info("Partnership inquiry %s (%s)", partnership.id, partnership.tier)
        return partnership

    def list_partnerships(
        self,
        session: Session,
        status_filter: str | None = None,
        tier: str | None = None,
        search: str | None = None,
        sort: str = "created_at",
        direction: Direction = "desc",
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        filters = []
        if status_filter:
            filters.append(QueryFilter(field="status", operator="==", value=status_filter))
        if tier:
            filters.append(QueryFilter(field="tier", operator="==", value=tier))
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

    def get_partnership(self, session: Session, partnership_id: uuid.UUID) -> Partnership:
        partnership = self.repo.get_by_id(session, partnership_id)
        if not partnership:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Partnership inquiry not found",
            )
        return partnership

    def update_status(
        self,
        session: Session,
        partnership_id: uuid.UUID,
        payload: PartnershipStatusUpdate,
    ) -> Partnership:
        partnership = self.get_partnership(session, partnership_id)
        partnership.status = payload.status
        return self.repo.update(session, partnership)

    def delete(self, session: Session, partnership_id: uuid.UUID) -> None:
        partnership = self.get_partnership(session, partnership_id)
        self.repo.delete(session, partnership)
