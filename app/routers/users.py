# app/routers/users.py
import uuid

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.core.auth import require_admin, require_auth
from app.core.config import get_settings
from app.database import get_session
from app.repositories.query_gateway import CollectionGateway
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.query import Direction, PageRead
from app.schemas.user import RoleName, UserRead, UserStatusName, UserStatusUpdate, UserUpdate
from app.services.session_service import SessionContext
from app.services.user_service import UserService

settings = get_settings()

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
gateway = CollectionGateway(max_page_size=settings.MAX_PAGE_SIZE)
service = UserService(repo, VendorRepository(), gateway)


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_auth),
):
    """
    Return the authenticated user's profile.

    Auth:
      - Requires valid Supabase JWT.
    """
    return service.get_me(session, context)


@router.patch("/me", response_model=UserRead)
def update_me(
    payload: UserUpdate,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_auth),
):
    """
    Update the authenticated user's profile (partial update).

    Currently, only `name` is editable.
    """
    return service.update_me(session, context, payload)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=PageRead,
    dependencies=[Depends(require_admin)],
)
def list_users(
    session: Session = Depends(get_session),
    role: RoleName | None = None,
    status: UserStatusName | None = None,
    search: str | None = None,
    sort: str = "created_at",
    direction: Direction = "desc",
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """
    List identity records (admin only).

    Cursor pagination: pass `last_record` of the previous page as
    `cursor`, with the same `sort`.
    """
    page = service.list_users(
        session,
        role=role,
        status_filter=status,
        search=search,
        sort=sort,
        direction=direction,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Get a specific user by id (admin only).
    """
    return service.get_user(session, user_id)


@router.patch(
    "/{user_id}/status",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def change_status(
    user_id: uuid.UUID,
    payload: UserStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Update the status of a non-vendor account (admin only).

    Vendor accounts are rejected with 409.
    """
    return service.update_status(session, user_id, payload)
