# app/routers/partnerships.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.auth import get_session_context, require_admin, require_staff
from app.core.config import get_settings
from app.database import get_session
from app.repositories.partnership_repo import PartnershipRepository
from app.repositories.query_gateway import CollectionGateway
from app.schemas.partnership import (
    PartnershipCreate,
    PartnershipRead,
    PartnershipStatus,
    PartnershipStatusUpdate,
    Tier,
)
from app.schemas.query import Direction, PageRead
from app.services.partnership_service import PartnershipService
from app.services.session_service import SessionContext

settings = get_settings()

router = APIRouter(prefix="/partnerships", tags=["Partnerships"])

repo = PartnershipRepository()
gateway = CollectionGateway(max_page_size=settings.MAX_PAGE_SIZE)
service = PartnershipService(repo, gateway)


@router.post("", response_model=PartnershipRead, status_code=status.HTTP_201_CREATED)
def submit_partnership(
    payload: PartnershipCreate,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(get_session_context),
):
    """
    Public partnership form.

    - Guests allowed.
    - Signed-in visitors are linked through `user_id`.
    """
    return service.submit(session, payload, context)


@router.get("", response_model=PageRead, dependencies=[Depends(require_staff)])
def list_partnerships(
    session: Session = Depends(get_session),
    status: PartnershipStatus | None = None,
    tier: Tier | None = None,
    search: str | None = None,
    sort: str = "created_at",
    direction: Direction = "desc",
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """Partnership inquiries (admin / manager)."""
    page = service.list_partnerships(
        session,
        status_filter=status,
        tier=tier,
        search=search,
        sort=sort,
        direction=direction,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.patch(
    "/{partnership_id}/status",
    response_model=PartnershipRead,
    dependencies=[Depends(require_staff)],
)
def update_partnership_status(
    partnership_id: uuid.UUID,
    payload: PartnershipStatusUpdate,
    session: Session = Depends(get_session),
):
    return service.update_status(session, partnership_id, payload)


@router.delete(
    "/{partnership_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_partnership(
    partnership_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    service.delete(session, partnership_id)
