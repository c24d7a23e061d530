import contextlib
import sqlite3
import threading
import time
from typing import Iterator, Optional

from contact_repository import SqliteContactRepository
from errors import StorageUnavailable
from logging_config import get_logger

DB_NAME = "contacts.db"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS Contact (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phoneNumber TEXT,
        email TEXT,
        linkedId INTEGER,
        linkPrecedence TEXT NOT NULL CHECK(linkPrecedence IN ('secondary', 'primary')),
        createdAt DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')),
        updatedAt DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')),
        deletedAt DATETIME,
        CHECK (email IS NOT NULL OR phoneNumber IS NOT NULL),
        CHECK ((linkPrecedence = 'primary' AND linkedId IS NULL)
               OR (linkPrecedence = 'secondary' AND linkedId IS NOT NULL)),
        FOREIGN KEY (linkedId) REFERENCES Contact (id)
    );
    CREATE INDEX IF NOT EXISTS ix_contact_email ON Contact (email);
    CREATE INDEX IF NOT EXISTS ix_contact_phone_number ON Contact (phoneNumber);
    CREATE INDEX IF NOT EXISTS ix_contact_linked_id ON Contact (linkedId);
"""

logger = get_logger(__name__)


class ContactDatabase:
    """Process-wide handle on the contact store.

    A single connection is opened at startup and shared by request threads;
    transactions are serialized by a lock in-process and by ``BEGIN IMMEDIATE``
    across processes.
    """

    def __init__(self, path: str = DB_NAME, busy_timeout: float = 5.0):
        self.path = path
        self.busy_timeout = busy_timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(
                    self.path,
                    timeout=self.busy_timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"cannot open contact store {self.path}: {exc}") from exc
            self._conn = conn
            logger.info("database.opened", path=self.path)
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("database.closed", path=self.path)

    @contextlib.contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[SqliteContactRepository]:
        """Run the body in one serialized transaction.

        Commits when the body returns, rolls back on any exception. With a
        timeout, a transaction still open past its deadline is rolled back
        and reported as StorageUnavailable.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._lock.acquire(timeout=-1 if timeout is None else timeout):
            raise StorageUnavailable("timed out waiting for the contact store")
        try:
            conn = self.connect()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield SqliteContactRepository(conn)
                if deadline is not None and time.monotonic() > deadline:
                    raise StorageUnavailable("transaction deadline exceeded")
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc
        finally:
            self._lock.release()
