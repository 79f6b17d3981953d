import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.quotation import Quotation
from app.repositories.product_repo import ProductRepository
from app.repositories.query_gateway import CollectionGateway
from app.repositories.quotation_repo import QuotationRepository
from app.schemas.query import Direction, Page, QueryFilter, list_request
from app.schemas.quotation import QuotationCreate, QuotationStatusUpdate
from app.services.session_service import SessionContext


class QuotationService:
    """
    Bulk quotation requests.

    Rules:
      - customer_id always comes from the session, never from the payload
      - every line must reference an existing product
      - only Pending quotations can be decided (Approved / Declined)
    """

    def __init__(
        self,
        repo: QuotationRepository,
        product_repo: ProductRepository,
        gateway: CollectionGateway,
    ):
        self.repo = repo
        self.product_repo = product_repo
        self.gateway = gateway

    def create_quotation(
        self,
        session: Session,
        context: SessionContext,
        payload: QuotationCreate,
    ) -> Quotation:
        items = []
        for item in payload.products:
            product = self.product_repo.get_by_id(session, item.product_id)
            if not product:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Product {item.product_id} does not exist",
                )
            items.append(
                {
                    "product_id": str(product.id),
                    "product_name": item.product_name or product.name,
                    "quantity": item.quantity,
                    "unit": item.unit or product.unit,
                }
            )

        quotation = Quotation(
            customer_id=context.principal_id,
            products=items,
            delivery_location=payload.delivery_location,
            preferred_schedule=payload.preferred_schedule,
            monthly_volume=payload.monthly_volume,
            additional_info=payload.additional_info,
        )
        return self.repo.create(session, quotation)

    def list_quotations(
        self,
        session: Session,
        customer_id: uuid.UUID | None = None,
        status_filter: str | None = None,
        direction: Direction = "desc",
        page_size: int = 20,
        cursor: str | None = None,
    ) -> Page:
        filters = []
        if customer_id is not None:
            filters.append(QueryFilter(field="customer_id", operator="==", value=customer_id))
        if status_filter:
            filters.append(QueryFilter(field="status", operator="==", value=status_filter))
        request = list_request(
            self.repo.collection,
            filters=filters,
            sort="created_at",
            direction=direction,
            page_size=page_size,
            cursor=cursor,
        )
        return self.gateway.query(session, request)

    def get_quotation(self, session: Session, quotation_id: uuid.UUID) -> Quotation:
        quotation = self.repo.get_by_id(session, quotation_id)
        if not quotation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Quotation not found",
            )
        return quotation

    def update_status(
        self,
        session: Session,
        quotation_id: uuid.UUID,
        reviewer: SessionContext,
        payload: QuotationStatusUpdate,
    ) -> Quotation:
        quotation = self.get_quotation(session, quotation_id)
        if payload.status == "Pending" or quotation.status != "Pending":
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot change quotation from '{quotation.status}' to '{payload.status}'",
            )
        quotation.status = payload.status
        quotation.reviewed_by = reviewer.principal_id
        return self.repo.update(session, quotation)
