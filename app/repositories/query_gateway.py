import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Callable
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import String, and_, cast, or_
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Session, SQLModel, select

from app.core.changefeed import ChangeFeed, change_feed
from app.database import new_session
from app.models.partnership import Partnership
from app.models.product import Product
from app.models.quotation import Quotation
from app.models.user import User
from app.models.vendor import Vendor, VendorActivity
from app.schemas.query import Page, QueryFilter, QueryRequest, QuerySort

logger = logging.getLogger(__name__)

# Upper bound appended to a prefix to build the search range.
SEARCH_SENTINEL = "\uf8ff"

COLLECTIONS: dict[str, type[SQLModel]] = {
    model.__tablename__: model
    for model in (User, Vendor, VendorActivity, Partnership, Quotation, Product)
}

_CLOSED = object()


class InvalidQueryError(ValueError):
    """The request cannot be turned into a store query (HTTP 400)."""


@lru_cache
def _adapter(py_type: type) -> TypeAdapter:
    return TypeAdapter(py_type)


def _coerce(column, value: Any) -> Any:
    """
    Convert a raw (often string) value to the column's Python type.

    Query params arrive as strings; UUID / datetime / numeric columns need
    real objects for the bind processors.
    """
    if value is None:
        return None
    # TypeDecorators (AutoString) report their type through `impl`.
    py_type = None
    for sa_type in (column.type, getattr(column.type, "impl", None)):
        if sa_type is None:
            continue
        try:
            py_type = sa_type.python_type
            break
        except NotImplementedError:
            continue
    if py_type is None or py_type in (dict, list):
        return value
    try:
        return _adapter(py_type).validate_python(value)
    except ValidationError as exc:
        raise InvalidQueryError(
            f"Invalid value {value!r} for field '{column.name}'"
        ) from exc


def _jsonable(value: Any) -> Any:
    return _adapter(Any).dump_python(value, mode="json")


class CollectionGateway:
    """
    The single read path for list views.

    Turns a QueryRequest (filters, sort, prefix search, keyset cursor,
    page size) into one SELECT and returns a Page. `subscribe` gives the
    realtime variant: a page is pushed again after every committed change
    to the collection until the subscription is closed.

    Store errors are logged and re-raised unchanged. No retries.
    """

    def __init__(
        self,
        collections: dict[str, type[SQLModel]] | None = None,
        feed: ChangeFeed = change_feed,
        session_factory: Callable[[], Session] = new_session,
        max_page_size: int = 100,
    ):
        self.collections = collections if collections is not None else COLLECTIONS
        self.feed = feed
        self.session_factory = session_factory
        self.max_page_size = max_page_size

    # ----- One-shot -----

    def query(self, session: Session, request: QueryRequest) -> Page:
        """Run `request` once and return the page plus its resume cursor."""
        model = self._model(request.path)
        stmt, sort = self._build(session, model, request)

        try:
            records = session.exec(stmt).all()
        except Exception:
            logger.exception("Collection query failed (%s)", request.path)
            raise

        data = [record.model_dump() for record in records]
        last_record = self._encode_cursor(records[-1], sort) if records else None
        return Page(data=data, last_record=last_record)

    def fetch_page(
        self,
        request: QueryRequest,
        session_factory: Callable[[], Session] | None = None,
    ) -> Page:
        """`query` with its own short-lived session (for realtime re-reads)."""
        factory = session_factory or self.session_factory
        with factory() as session:
            return self.query(session, request)

    # ----- Realtime -----

    def subscribe(
        self,
        request: QueryRequest,
        session_factory: Callable[[], Session] | None = None,
    ) -> "Subscription":
        """
        Validate `request` and return a Subscription for it.

        Nothing is read until the subscription is iterated.
        """
        model = self._model(request.path)
        if request.cursor and request.sort is None and not self._has_search(request):
            raise InvalidQueryError("A cursor requires a sort field")
        self._check_page_size(request)
        for f in request.filters:
            self._column(model, request.path, f.field)
        return Subscription(self, request, session_factory)

    # ----- Building -----

    def _model(self, path: str) -> type[SQLModel]:
        model = self.collections.get(path)
        if model is None:
            raise InvalidQueryError(f"Unknown collection '{path}'")
        return model

    @staticmethod
    def _column(model: type[SQLModel], path: str, field: str):
        column = model.__table__.c.get(field)
        if column is None:
            raise InvalidQueryError(f"Unknown field '{field}' on '{path}'")
        return column

    @staticmethod
    def _has_search(request: QueryRequest) -> bool:
        return request.search is not None and bool(request.search.value)

    def _check_page_size(self, request: QueryRequest) -> None:
        if request.page_size > self.max_page_size:
            raise InvalidQueryError(
                f"page_size must be <= {self.max_page_size}"
            )

    def _build(self, session: Session, model: type[SQLModel], request: QueryRequest):
        self._check_page_size(request)
        table = model.__table__
        pk = table.c.id
        dialect = session.get_bind().dialect.name

        stmt = select(model)

        # 1) filters, in the given order
        for f in request.filters:
            column = self._column(model, request.path, f.field)
            stmt = stmt.where(self._condition(column, f, dialect))

        # 2) prefix search; forces the sort field
        sort = request.sort
        if self._has_search(request):
            column = self._column(model, request.path, request.search.field)
            value = request.search.value
            stmt = stmt.where(column >= value, column <= value + SEARCH_SENTINEL)
            direction = sort.direction if sort else "asc"
            sort = QuerySort(field=request.search.field, direction=direction)

        # 3) cursor needs an explicit order to resume from
        if request.cursor and sort is None:
            raise InvalidQueryError(
                "A cursor requires a sort field; pass `sort` with the same "
                "field used for the previous page"
            )

        effective = sort or QuerySort(field="id", direction="asc")
        sort_col = self._column(model, request.path, effective.field)
        descending = effective.direction == "desc"

        if request.cursor:
            stmt = stmt.where(
                self._after_cursor(request.cursor, effective, sort_col, pk, descending)
            )

        if descending:
            stmt = stmt.order_by(sort_col.desc().nulls_last(), pk.desc())
        else:
            stmt = stmt.order_by(sort_col.asc().nulls_last(), pk.asc())

        # 4) page size always last
        stmt = stmt.limit(request.page_size)
        return stmt, effective

    def _condition(self, column, f: QueryFilter, dialect: str):
        op = f.operator
        if op in ("array-contains", "array-contains-any"):
            values = f.value if op == "array-contains-any" else [f.value]
            if not isinstance(values, (list, tuple)) or not values:
                raise InvalidQueryError(f"'{op}' needs a non-empty list on '{f.field}'")
            return or_(*(self._array_contains(column, v, dialect) for v in values))

        if op in ("in", "not-in"):
            if not isinstance(f.value, (list, tuple)) or not f.value:
                raise InvalidQueryError(f"'{op}' needs a non-empty list on '{f.field}'")
            values = [_coerce(column, v) for v in f.value]
            return column.in_(values) if op == "in" else column.not_in(values)

        value = _coerce(column, f.value)
        if op == "==":
            return column == value
        if op == "!=":
            return column != value
        if op == "<":
            return column < value
        if op == "<=":
            return column <= value
        if op == ">":
            return column > value
        return column >= value

    @staticmethod
    def _array_contains(column, value: Any, dialect: str):
        if dialect == "postgresql":
            return cast(column, JSONB).contains([value])
        # JSON stored as text elsewhere: match the serialized element.
        return cast(column, String).contains(json.dumps(value), autoescape=True)

    # ----- Cursor -----

    @staticmethod
    def _encode_cursor(record: SQLModel, sort: QuerySort) -> str:
        payload = {
            "f": sort.field,
            "v": _jsonable(getattr(record, sort.field)),
            "id": _jsonable(record.id),
        }
        raw = json.dumps(payload, separators=(",", ":")).encode()
        return base64.urlsafe_b64encode(raw).decode()

    def _after_cursor(self, cursor: str, sort: QuerySort, sort_col, pk, descending: bool):
        """
        Keyset condition for "strictly after the cursor record" under
        ORDER BY sort_col NULLS LAST, id.
        """
        try:
            payload = json.loads(base64.urlsafe_b64decode(cursor.encode()))
            field, raw_value, raw_id = payload["f"], payload["v"], payload["id"]
        except (binascii.Error, ValueError, KeyError, TypeError) as exc:
            raise InvalidQueryError("Malformed cursor") from exc

        if field != sort.field:
            raise InvalidQueryError(
                f"Cursor was issued for sort '{field}', not '{sort.field}'"
            )

        value = _coerce(sort_col, raw_value)
        last_id = _coerce(pk, raw_id)
        pk_after = pk < last_id if descending else pk > last_id

        if value is None:
            return and_(sort_col.is_(None), pk_after)

        beyond = sort_col < value if descending else sort_col > value
        return or_(
            beyond,
            and_(sort_col == value, pk_after),
            sort_col.is_(None),
        )


class Subscription:
    """
    Live page for one QueryRequest.

    Async iterator: yields the current page immediately, then a freshly
    recomputed page after each committed change to the collection.
    Changes that arrive while a page is being computed are coalesced into
    one refresh. Must be closed explicitly (or used as an async context
    manager); garbage collection does not stop it.
    """

    def __init__(
        self,
        gateway: CollectionGateway,
        request: QueryRequest,
        session_factory: Callable[[], Session] | None = None,
    ):
        self.gateway = gateway
        self.request = request
        self.session_factory = session_factory
        self._queue: asyncio.Queue | None = None
        self._token: int | None = None
        self._primed = False
        self.closed = False

    def _ensure_registered(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._token = self.gateway.feed.register(
                self.request.path,
                asyncio.get_running_loop(),
                self._queue,
            )

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Page:
        if self.closed:
            raise StopAsyncIteration
        self._ensure_registered()

        if self._primed:
            item = await self._queue.get()
            while item is not _CLOSED and not self._queue.empty():
                item = self._queue.get_nowait()
            if item is _CLOSED or self.closed:
                raise StopAsyncIteration
        self._primed = True

        try:
            return await asyncio.to_thread(
                self.gateway.fetch_page, self.request, self.session_factory
            )
        except Exception:
            logger.error("Realtime listener error (%s)", self.request.path)
            raise

    def close(self) -> None:
        """Stop receiving changes and release the feed registration."""
        if self.closed:
            return
        self.closed = True
        if self._token is not None:
            self.gateway.feed.unregister(self._token)
            self._token = None
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
