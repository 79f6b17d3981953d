# app/routers/vendors.py
import asyncio
import contextlib
import logging
import uuid

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Query,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session

from app.core.auth import get_principal, get_session_resolver, require_admin, require_auth, require_staff
from app.core.config import get_settings
from app.core.roles import STAFF_ROLES, VendorStatus
from app.database import get_session, get_session_factory
from app.repositories.query_gateway import CollectionGateway, InvalidQueryError
from app.repositories.user_repo import UserRepository
from app.repositories.vendor_repo import VendorRepository
from app.schemas.query import Direction, PageRead, QueryFilter, list_request
from app.schemas.vendor import (
    VendorModerationReason,
    VendorRead,
    VendorStatusName,
    VendorStatusUpdate,
)
from app.services.session_service import SessionContext, SessionResolver
from app.services.vendor_service import VendorService

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/vendors", tags=["Vendors"])

repo = VendorRepository()
gateway = CollectionGateway(max_page_size=settings.MAX_PAGE_SIZE)
service = VendorService(repo, UserRepository(), gateway)


# -------- Staff listing --------


@router.get("", response_model=PageRead, dependencies=[Depends(require_staff)])
def list_vendors(
    session: Session = Depends(get_session),
    status: VendorStatusName | None = None,
    search: str | None = None,
    sort: str = "created_at",
    direction: Direction = "desc",
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """
    List vendors (admin / manager).

    `search` is a prefix match on business_name and sorts by it.
    """
    page = service.list_vendors(
        session,
        status_filter=status,
        search=search,
        sort=sort,
        direction=direction,
        page_size=page_size,
        cursor=cursor,
    )
    return PageRead.from_page(page, page_size)


@router.get("/pending", response_model=PageRead, dependencies=[Depends(require_staff)])
def list_pending_vendors(
    session: Session = Depends(get_session),
    search: str | None = None,
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """Vendors in `pending_approval`, newest first."""
    page = service.list_pending(session, search=search, page_size=page_size, cursor=cursor)
    return PageRead.from_page(page, page_size)


# -------- Realtime --------


def _resolve_socket_caller(
    token: str | None,
    session_factory,
    resolver: SessionResolver,
) -> SessionContext | None:
    if not token:
        return None
    try:
        principal = get_principal(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    except HTTPException:
        return None
    with session_factory() as session:
        return resolver.on_auth_state_changed(session, principal)


@router.websocket("/live")
async def live_pending_vendors(
    websocket: WebSocket,
    token: str | None = None,
    page_size: int = settings.DEFAULT_PAGE_SIZE,
    session_factory=Depends(get_session_factory),
    resolver: SessionResolver = Depends(get_session_resolver),
):
    """
    Push the pending-vendor list whenever the vendors collection changes.

    Staff only; the access token travels as `?token=` because browsers
    cannot set headers on WebSocket requests. Every message is a PageRead.
    """
    context = await asyncio.to_thread(_resolve_socket_caller, token, session_factory, resolver)
    if context is None or not context.is_authenticated or context.role not in STAFF_ROLES:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    request = list_request(
        repo.collection,
        filters=[
            QueryFilter(field="status", operator="==", value=VendorStatus.PENDING_APPROVAL.value)
        ],
        sort="created_at",
        direction="desc",
        page_size=min(max(page_size, 1), settings.MAX_PAGE_SIZE),
    )
    try:
        subscription = gateway.subscribe(request, session_factory)
    except InvalidQueryError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def watch_disconnect():
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            subscription.close()

    watcher = asyncio.create_task(watch_disconnect())
    try:
        async for page in subscription:
            payload = PageRead.from_page(page, request.page_size).model_dump(mode="json")
            await websocket.send_json(payload)
    except WebSocketDisconnect:
        logger.info("Live vendor feed disconnected (%s)", context.principal_id)
    finally:
        subscription.close()
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


# -------- Single vendor --------


@router.get("/{vendor_id}", response_model=VendorRead)
def get_vendor(
    vendor_id: uuid.UUID,
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_auth),
):
    """
    Vendor details.

    Staff can read any vendor; a partner can read its own record.
    """
    if context.role not in STAFF_ROLES and context.principal_id != vendor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this vendor",
        )
    return service.get_vendor(session, vendor_id)


@router.get(
    "/{vendor_id}/activity",
    response_model=PageRead,
    dependencies=[Depends(require_staff)],
)
def list_vendor_activity(
    vendor_id: uuid.UUID,
    session: Session = Depends(get_session),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, gt=0, le=settings.MAX_PAGE_SIZE),
    cursor: str | None = None,
):
    """Audit trail of a vendor, newest first."""
    page = service.list_activity(session, vendor_id, page_size=page_size, cursor=cursor)
    return PageRead.from_page(page, page_size)


# -------- Moderation (admin) --------


@router.post("/{vendor_id}/approve", response_model=VendorRead)
def approve_vendor(
    vendor_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: SessionContext = Depends(require_admin),
):
    return service.approve(session, vendor_id, admin)


@router.post("/{vendor_id}/reject", response_model=VendorRead)
def reject_vendor(
    vendor_id: uuid.UUID,
    payload: VendorModerationReason | None = None,
    session: Session = Depends(get_session),
    admin: SessionContext = Depends(require_admin),
):
    reason = payload.reason if payload else None
    return service.reject(session, vendor_id, admin, reason)


@router.post("/{vendor_id}/suspend", response_model=VendorRead)
def suspend_vendor(
    vendor_id: uuid.UUID,
    payload: VendorModerationReason | None = None,
    session: Session = Depends(get_session),
    admin: SessionContext = Depends(require_admin),
):
    reason = payload.reason if payload else None
    return service.suspend(session, vendor_id, admin, reason)


@router.patch("/{vendor_id}/status", response_model=VendorRead)
def change_vendor_status(
    vendor_id: uuid.UUID,
    payload: VendorStatusUpdate,
    session: Session = Depends(get_session),
    admin: SessionContext = Depends(require_admin),
):
    """
    Generic status change from the vendor details page.

    Approving here also grants the partner role, like /approve.
    """
    if payload.status == VendorStatus.APPROVED.value:
        return service.approve(session, vendor_id, admin)
    return service.change_vendor_status(
        session,
        vendor_id,
        payload.status,
        admin,
        reason=payload.reason,
    )


# -------- Documents --------


@router.post("/{vendor_id}/documents", response_model=VendorRead)
async def upload_document(
    vendor_id: uuid.UUID,
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    context: SessionContext = Depends(require_auth),
):
    """
    Upload a business document (PDF, JPEG or PNG, max 10MB).

    Allowed for the vendor itself and for admins.
    """
    file_bytes = await file.read()
    return await asyncio.to_thread(
        service.add_document,
        session,
        vendor_id,
        context,
        file.filename or "document",
        file.content_type or "",
        file_bytes,
    )
