import asyncio
import itertools
import logging
import select
import threading
from collections.abc import Iterable

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy.engine import Engine, make_url

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "collection_changes"


class ChangeFeed:
    """
    In-process fan-out of "collection X changed" notifications.

    Committed writes reach the feed two ways: the session hook in
    app.database reports tables written through this process, and
    PgNotifyRelay republishes the Postgres NOTIFY sent by table triggers
    for every writer of the store. While the relay is listening, local
    commits are left to the trigger so each change is announced once.

    Realtime subscriptions register an asyncio queue together with the
    loop that owns it; notifications are handed over with
    call_soon_threadsafe so the queue is only touched on its own loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[int, tuple[str, asyncio.AbstractEventLoop, asyncio.Queue]] = {}
        self.relayed = False

    def register(
        self,
        path: str,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue,
    ) -> int:
        """Start delivering changes of `path` to `queue`. Returns a token."""
        with self._lock:
            token = next(self._ids)
            self._subscribers[token] = (path, loop, queue)
        return token

    def unregister(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def subscriber_count(self, path: str | None = None) -> int:
        with self._lock:
            if path is None:
                return len(self._subscribers)
            return sum(1 for p, _, _ in self._subscribers.values() if p == path)

    def committed(self, paths: Iterable[str]) -> None:
        """Announce tables written by a commit in this process."""
        if self.relayed:
            return
        for path in sorted(set(paths)):
            self.publish(path)

    def publish_all(self) -> None:
        """Wake every subscriber, e.g. after changes may have been missed."""
        with self._lock:
            paths = {p for p, _, _ in self._subscribers.values()}
        for path in sorted(paths):
            self.publish(path)

    def publish(self, path: str) -> None:
        """Notify every subscriber of `path`. Never raises."""
        with self._lock:
            targets = [(t, loop, q) for t, (p, loop, q) in self._subscribers.items() if p == path]

        for token, loop, queue in targets:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, path)
            except RuntimeError:
                # Loop already closed: the subscriber leaked without close().
                logger.warning("Dropping subscriber %s on closed event loop (%s)", token, path)
                self.unregister(token)


# Process-wide feed shared by the session hook, the relay and the query gateway.
change_feed = ChangeFeed()


# ---------------------------------------------------------
# Postgres LISTEN / NOTIFY
#
# Every registered table gets a statement-level trigger that sends
# pg_notify(<channel>, <table name>). Postgres delivers notifications
# only after the writing transaction commits, and folds identical
# payloads within one transaction.
# ---------------------------------------------------------

_NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_collection_change() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify(TG_ARGV[0], TG_TABLE_NAME);
    RETURN NULL;
END;
$$ LANGUAGE plpgsql
"""

_TRIGGER_NAME = "collection_change_notify"


def install_change_triggers(engine: Engine, tables: Iterable[str], channel: str = DEFAULT_CHANNEL) -> bool:
    """
    Create (or replace) the NOTIFY triggers on `tables`.

    Returns False without touching anything on non-Postgres engines.
    """
    if engine.dialect.name != "postgresql":
        return False

    channel_literal = "'" + channel.replace("'", "''") + "'"
    with engine.begin() as conn:
        conn.exec_driver_sql(_NOTIFY_FUNCTION)
        for table in tables:
            quoted = engine.dialect.identifier_preparer.quote(table)
            conn.exec_driver_sql(f"DROP TRIGGER IF EXISTS {_TRIGGER_NAME} ON {quoted}")
            conn.exec_driver_sql(
                f"CREATE TRIGGER {_TRIGGER_NAME} "
                f"AFTER INSERT OR UPDATE OR DELETE ON {quoted} "
                f"FOR EACH STATEMENT EXECUTE FUNCTION notify_collection_change({channel_literal})"
            )
    logger.info("Change triggers installed on %s (channel %s)", ", ".join(tables), channel)
    return True


def libpq_dsn(database_url: str) -> str:
    """SQLAlchemy URL (postgresql+psycopg2://...) -> libpq connection URI."""
    url = make_url(database_url).set(drivername="postgresql")
    return url.render_as_string(hide_password=False)


class PgNotifyRelay:
    """
    Republish Postgres notifications on a ChangeFeed.

    Runs one daemon thread holding a dedicated autocommit connection that
    LISTENs on `channel`. The connection must be a direct or session-mode
    one: a transaction-mode pooler does not keep LISTEN registrations.
    On connection loss it reconnects after `retry_seconds` and wakes every
    subscriber once, since changes may have been missed meanwhile.
    """

    def __init__(
        self,
        dsn: str,
        feed: ChangeFeed = change_feed,
        channel: str = DEFAULT_CHANNEL,
        poll_seconds: float = 5.0,
        retry_seconds: float = 5.0,
    ):
        self.dsn = dsn
        self.feed = feed
        self.channel = channel
        self.poll_seconds = poll_seconds
        self.retry_seconds = retry_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pg-notify-relay", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.feed.relayed = False

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._listen()
            except psycopg2.Error:
                logger.exception("Change relay lost its connection; retrying in %ss", self.retry_seconds)
            self.feed.relayed = False
            self._stop.wait(self.retry_seconds)

    def _listen(self) -> None:
        conn = psycopg2.connect(self.dsn)
        try:
            conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cur:
                cur.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
            self.feed.relayed = True
            logger.info("Listening for store changes on '%s'", self.channel)
            self.feed.publish_all()

            while not self._stop.is_set():
                if select.select([conn], [], [], self.poll_seconds) == ([], [], []):
                    continue
                conn.poll()
                self.drain(conn)
        finally:
            conn.close()

    def drain(self, conn) -> int:
        """Publish every pending notification of `conn`; returns how many."""
        count = 0
        while conn.notifies:
            notify = conn.notifies.pop(0)
            self.feed.publish(notify.payload)
            count += 1
        return count
