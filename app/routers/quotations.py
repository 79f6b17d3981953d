# app/routers/quotations.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.auth import require_roles, require_staff
from app.core.config import get_settings
from app.core.roles import Role
from app.database import get_session
from app.repositories.product_repo import ProductRepository
from app.repositories.query_gateway import CollectionGateway
from app.repositories.quotation_repo import QuotationRepository
from app.schemas.query import PageRead
from app.schemas.quotation import (
    QuotationCreate,
    QuotationRead,
    QuotationStatus,
    QuotationStatusUpdate,
)
from app.services.quotation_service import QuotationService
from app.services.session_service import SessionContext

settings = get_settings()

router = APIRouter(prefix="/quotations", tags=["Quotations"])

repo = QuotationRepository()
gateway = CollectionGateway(max_page_size=settings.MAX_PAGE_SIZE)
service = QuotationService(repo, ProductRepository(), gateway)

require_buyer = require_roles(Role.CUSTOMER, Role.PARTNER)


@router.post("", response_model=QuotationRead, status_code=status.HTTP_201_CREATED)
def create_quotation(
    payload: QuotationCreate,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_buyer),
):
    """
    Request a bulk quotation.

    - customer_id comes from the token.
    - status starts as 'Pending'.
    """
    return service.create_quotation(session, context, payload)


@router.get("/me", response_model=PageRead)
def list_my_quotations(
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_buyer),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    page = service.list_quotations(
        session,
        customer_id=context.principal_id,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.get("", response_model=PageRead, dependencies=[Depends(require_staff)])
def list_quotations(
    session: Session = Depends(get_session),
    status: QuotationStatus | None = None,
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """All quotation requests (admin / manager), newest first."""
    page = service.list_quotations(
        session,
        status_filter=status,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.patch("/{quotation_id}/status", response_model=QuotationRead)
def update_quotation_status(
    quotation_id: uuid.UUID,
    payload: QuotationStatusUpdate,
    session: Session = Depends(get_session),
    reviewer: SessionContext = Depends(require_staff),
):
    """Approve or decline a pending quotation (admin / manager)."""
    return service.update_status(session, quotation_id, reviewer, payload)
