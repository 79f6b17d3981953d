from sqlalchemy import event
from sqlalchemy.orm import Session as OrmSession
from sqlmodel import SQLModel, create_engine, Session

from app.core.changefeed import change_feed
from app.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Supabase Postgres connection (via pooler)
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_size=1       : keep only 1 connection to the Supabase pooler
# - max_overflow=0    : do not open extra connections beyond the pool
# - pool_pre_ping=True: validate connections before using them
#
# Supabase Session mode limits the number of clients. If each backend
# process opens many connections (SQLAlchemy default pool_size 5+),
# you can easily hit:
#   "MaxClientsInSessionMode: max clients reached"
#
# Non-Postgres URLs (local SQLite) get the driver defaults.
# ---------------------------------------------------------


def is_postgres(url: str) -> bool:
    return url.startswith(("postgres://", "postgresql"))


def _engine_kwargs(url: str) -> dict:
    if not is_postgres(url):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 1, "max_overflow": 0}


db_url = settings.DATABASE_URL

# Append sslmode=require if it is not already present
if is_postgres(db_url) and "sslmode=" not in db_url:
    if "?" in db_url:
        db_url = db_url + "&sslmode=require"
    else:
        db_url = db_url + "?sslmode=require"

engine = create_engine(
    db_url,
    echo=False,  # set to True if you want to debug SQL queries
    **_engine_kwargs(db_url),
)


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def new_session() -> Session:
    """
    Open a standalone Session outside of a request.

    Used by realtime subscriptions, which re-run their query on every
    change long after the originating request has finished.
    """
    return Session(engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Usage:

        from fastapi import Depends

        @router.get("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session


def get_session_factory():
    """
    FastAPI dependency returning the factory long-lived readers use to
    open their own sessions (realtime subscriptions).
    """
    return new_session


# ---------------------------------------------------------
# Change announcements
#
# Tables touched by a flush are remembered on the session and handed to
# the change feed once the transaction commits. Rolled back work is
# forgotten. Registered on the SQLAlchemy base Session so every session
# in the process (requests, realtime readers, scripts) is covered.
# ---------------------------------------------------------

_CHANGED_TABLES = "changed_tables"


@event.listens_for(OrmSession, "after_flush")
def _remember_changed_tables(session, flush_context):
    changed = session.info.setdefault(_CHANGED_TABLES, set())
    for obj in (*session.new, *session.dirty, *session.deleted):
        table = getattr(type(obj), "__tablename__", None)
        if table:
            changed.add(table)


@event.listens_for(OrmSession, "after_commit")
def _announce_changed_tables(session):
    changed = session.info.pop(_CHANGED_TABLES, None)
    if changed:
        change_feed.committed(changed)


@event.listens_for(OrmSession, "after_rollback")
def _forget_changed_tables(session):
    session.info.pop(_CHANGED_TABLES, None)
