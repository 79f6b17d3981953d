# app/services/product_service.py
import re
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.roles import VendorStatus
from app.models.product import Product
from app.repositories.product_repo import ProductRepository
from app.repositories.query_gateway import CollectionGateway
from app.repositories.vendor_repo import VendorRepository
from app.schemas.product import ProductCreate, ProductUpdate
from app.schemas.query import Direction, Page, QueryFilter, list_request
from app.services.session_service import SessionContext
from app.services.vendor_service import VendorService


class ProductService:
    """
    Business logic for storefront products.

    Responsibilities:
      - slug generation & uniqueness
      - only approved vendors may list or edit their own products
      - record `product_added` on the vendor's activity log
    """

    def __init__(
        self,
        repo: ProductRepository,
        vendor_repo: VendorRepository,
        vendor_service: VendorService,
        gateway: CollectionGateway,
    ):
        self.repo = repo
        self.vendor_repo = vendor_repo
        self.vendor_service = vendor_service
        self.gateway = gateway

    # ----- Helpers -----

    @staticmethod
    def _slugify(raw: str) -> str:
        """
        Basic slugification:
          - lowercase
          - non-alphanumeric -> '-'
          - collapse multiple '-'
          - strip leading/trailing '-'
        """
        value = raw.strip().lower()
        value = re.sub(r"[^a-z0-9]+", "-", value)
        value = re.sub(r"-+", "-", value)
        value = value.strip("-")
        return value or "product"

    def _ensure_unique_slug(self, session: Session, base_slug: str) -> str:
        """
        Ensure slug is unique by appending -2, -3, ... if needed.
        """
        slug = base_slug
        i = 2
        while self.repo.get_by_slug(session, slug) is not None:
            slug = f"{base_slug}-{i}"
            i += 1
        return slug

    def _require_approved_vendor(self, session: Session, context: SessionContext):
        vendor = self.vendor_repo.get_by_id(session, context.principal_id)
        if not vendor or vendor.status != VendorStatus.APPROVED.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only approved vendors can manage products",
            )
        return vendor

    # ----- Products -----

    def list_products(
        self,
        session: Session,
        category: str | None = None,
        owner_id: uuid.UUID | None = None,
        search: str | None = None,
        sort: str = "created_at",
        direction: Direction = "desc",
        page_size: int = 20,
        cursor: str | None = None,
        only_active: bool = True,
    ) -> Page:
        filters = []
        if only_active:
            filters.append(QueryFilter(field="is_active", operator="==", value=True))
        if category:
            filters.append(QueryFilter(field="category", operator="==", value=category))
        if owner_id is not None:
            filters.append(QueryFilter(field="owner_id", operator="==", value=owner_id))
        request = list_request(
            self.repo.collection,
            filters=filters,
            search_field="name",
            search=search,
            sort=sort,
            direction=direction,
            page_size=page_size,
            cursor=cursor,
        )
        return self.gateway.query(session, request)

    def get_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.repo.get_by_id(session, product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found",
            )
        return product

    def create_product(
        self,
        session: Session,
        context: SessionContext,
        payload: ProductCreate,
    ) -> Product:
        """
        Create a new product with a unique slug for the calling vendor.

        - If slug is provided => slugify & ensure unique.
        - Else => slugify from name & ensure unique.
        """
        vendor = self._require_approved_vendor(session, context)

        raw_slug = payload.slug or payload.name
        base_slug = self._slugify(raw_slug)
        slug = self._ensure_unique_slug(session, base_slug)

        product = Product(
            owner_id=vendor.id,
            name=payload.name,
            slug=slug,
            description=payload.description,
            category=payload.category,
            price=payload.price,
            unit=payload.unit,
            min_order=payload.min_order,
            stock_on_hand=payload.stock_on_hand,
            is_active=payload.is_active,
        )
        product = self.repo.create(session, product)

        self.vendor_service.record_activity(
            session,
            vendor.id,
            "product_added",
            f"Added product {product.name}",
        )
        return product

    def update_product(
        self,
        session: Session,
        context: SessionContext,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> Product:
        """Partial update of one of the caller's own products."""
        vendor = self._require_approved_vendor(session, context)
        product = self.get_product(session, product_id)
        if product.owner_id != vendor.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not your product",
            )

        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(product, field, value)

        return self.repo.update(session, product)
