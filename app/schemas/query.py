from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

Operator = Literal[
    "==",
    "!=",
    "<",
    "<=",
    ">",
    ">=",
    "in",
    "not-in",
    "array-contains",
    "array-contains-any",
]
Direction = Literal["asc", "desc"]

DEFAULT_PAGE_SIZE = 20


class QueryFilter(SQLModel):
    """One `field <operator> value` constraint."""

    model_config = ConfigDict(extra="forbid")

    field: str
    operator: Operator
    value: Any = None


class QuerySort(SQLModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    direction: Direction = "asc"


class QuerySearch(SQLModel):
    """
    Prefix search on a text field.

    Becomes `field >= value AND field <= value + "\\uf8ff"`.
    """

    model_config = ConfigDict(extra="forbid")

    field: str
    value: str


class QueryRequest(SQLModel):
    """
    Declarative read against one collection.

    Every list view goes through CollectionGateway with one of these.
    """

    model_config = ConfigDict(extra="forbid")

    path: str
    filters: list[QueryFilter] = Field(default_factory=list)
    sort: QuerySort | None = None
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    cursor: str | None = None
    search: QuerySearch | None = None
    realtime: bool = False

    @field_validator("path")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("path cannot be empty")
        return v


class Page(SQLModel):
    """
    One page of records.

    last_record is the resume cursor (None when the page is empty).
    There is no has_more here: callers derive it with `has_more()`.
    """

    data: list[dict[str, Any]] = Field(default_factory=list)
    last_record: str | None = None


def has_more(page: Page, page_size: int) -> bool:
    """A full page means there may be another one."""
    return len(page.data) == page_size


class PageRead(SQLModel):
    """Page as returned to HTTP clients."""

    data: list[dict[str, Any]]
    last_record: str | None = None
    has_more: bool

    @classmethod
    def from_page(cls, page: Page, page_size: int) -> "PageRead":
        return cls(
            data=page.data,
            last_record=page.last_record,
            has_more=has_more(page, page_size),
        )


def list_request(
    path: str,
    *,
    filters: list[QueryFilter] | None = None,
    search_field: str | None = None,
    search: str | None = None,
    sort: str | None = None,
    direction: Direction = "asc",
    page_size: int = DEFAULT_PAGE_SIZE,
    cursor: str | None = None,
) -> QueryRequest:
    """
    Build a QueryRequest from the query params every list endpoint takes.

    A blank search is ignored; a search without `search_field` is an error
    of the caller, not of the client.
    """
    term = (search or "").strip()
    return QueryRequest(
        path=path,
        filters=filters or [],
        sort=QuerySort(field=sort, direction=direction) if sort else None,
        page_size=page_size,
        cursor=cursor or None,
        search=QuerySearch(field=search_field, value=term) if term and search_field else None,
    )
