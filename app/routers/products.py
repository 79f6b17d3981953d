# app/routers/products.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.auth import require_partner
from app.core.config import get_settings
from app.database import get_session
from app.repositories.product_repo import ProductRepository
from app.repositories.query_gateway import CollectionGateway
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.product import ProductCreate, ProductRead, ProductUpdate
from app.schemas.query import Direction, PageRead
from app.services.product_service import ProductService
from app.services.session_service import SessionContext
from app.services.vendor_service import VendorService

settings = get_settings()

router = APIRouter(prefix="/products", tags=["Products"])
vendor_products_router = APIRouter(prefix="/vendors", tags=["Products"])

repo = ProductRepository()
vendor_repo = VendorRepository()
gateway = CollectionGateway(max_page_size=settings.MAX_PAGE_SIZE)
service = ProductService(
    repo,
    vendor_repo,
    VendorService(vendor_repo, UserRepository(), gateway),
    gateway,
)


# -------- Public endpoints --------


@router.get("", response_model=PageRead)
def list_products(
    session: Session = Depends(get_session),
    category: str | None = None,
    search: str | None = None,
    sort: str = "created_at",
    direction: Direction = "desc",
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """
    List storefront products.

    - Public endpoint.
    - Inactive products are hidden.
    - `search` is a prefix match on the product name.
    """
    page = service.list_products(
        session,
        category=category,
        search=search,
        sort=sort,
        direction=direction,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.get("/{product_id}", response_model=ProductRead)
def get_product(
    product_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Get a single product by id.

    - Public endpoint.
    """
    return service.get_product(session, product_id)


@vendor_products_router.get("/{vendor_id}/products", response_model=PageRead)
def list_vendor_products(
    vendor_id: uuid.UUID,
    session: Session = Depends(get_session),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """Active products of one vendor (public storefront page)."""
    page = service.list_products(
        session,
        owner_id=vendor_id,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


# -------- Vendor endpoints --------


@router.post(
    "",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
)
def create_product(
    payload: ProductCreate,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_partner),
):
    """
    Create a product (approved vendors only).

    - If `slug` is omitted, it's generated from `name`.
    - Slug uniqueness is enforced by appending -2, -3, ... when needed.
    """
    return service.create_product(session, context, payload)


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_partner),
):
    """
    Partial update of one of the caller's products.
    """
    return service.update_product(session, context, product_id, payload)
