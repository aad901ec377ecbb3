import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from bookstore.config import settings
from bookstore.errors import StoreConnectionError, StoreError

logger = logging.getLogger(__name__)

# Check the statement deadline every N sqlite virtual machine instructions.
_PROGRESS_STEPS = 1000


def _gen_random_uuid() -> str:
    return str(uuid.uuid4())


def _parse_uuid(value: Optional[str]) -> Optional[str]:
    """SQL ``UUID(text)``: parse text into the canonical identifier form.

    Raising here makes sqlite abort the statement, so a malformed id can never
    widen a WHERE clause.
    """
    if value is None:
        return None
    return str(uuid.UUID(str(value)))


def _to_store(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the catalog tables in the database if they don't exist."""
    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS genres (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS authors (
            id TEXT PRIMARY KEY,
            surname TEXT NOT NULL,
            name TEXT NOT NULL,
            patronymic TEXT,
            birth_date DATE,
            biography TEXT
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS books (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            genre_id INTEGER REFERENCES genres(id) ON DELETE SET NULL,
            is_available BOOLEAN DEFAULT 1,
            publication_date DATE,
            popularity_score INTEGER CHECK(popularity_score >= 1 AND popularity_score <= 10),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS book_authors (
            book_id TEXT NOT NULL,
            author_id TEXT NOT NULL,
            PRIMARY KEY (book_id, author_id),
            FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE,
            FOREIGN KEY (author_id) REFERENCES authors(id) ON DELETE CASCADE
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_genre_id ON books(genre_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_authors_author_id ON book_authors(author_id)")
    conn.commit()


class Database:
    """A single sqlite connection shared by every caller.

    Statements run one at a time under ``_lock``. Both waiting for the lock and
    running a statement are bounded by ``timeout`` seconds.
    """

    def __init__(self, conn: sqlite3.Connection, path: str, timeout: float) -> None:
        self._conn: Optional[sqlite3.Connection] = conn
        self._lock = threading.Lock()
        self.path = path
        self.timeout = timeout

    @classmethod
    def open(cls, path: Optional[str] = None, timeout: Optional[float] = None) -> "Database":
        path = path or settings.database_file
        timeout = settings.store_timeout if timeout is None else timeout
        try:
            conn = sqlite3.connect(path, timeout=timeout, check_same_thread=False)
        except sqlite3.Error as e:
            logger.error(f"Could not open database {path}: {e}")
            raise StoreConnectionError(f"Could not open database {path}: {e}") from e

        try:
            conn.execute("PRAGMA foreign_keys = ON;")
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.create_function("gen_random_uuid", 0, _gen_random_uuid)
            conn.create_function("UUID", 1, _parse_uuid, deterministic=True)
            create_tables(conn)
        except sqlite3.Error as e:
            conn.close()
            logger.error(f"Could not initialize database {path}: {e}")
            raise StoreConnectionError(f"Could not initialize database {path}: {e}") from e

        logger.info(f"Database connection established: {path}")
        return cls(conn, path, timeout)

    @property
    def closed(self) -> bool:
        return self._conn is None

    @contextmanager
    def _statement(self) -> Iterator[sqlite3.Connection]:
        if not self._lock.acquire(timeout=self.timeout):
            raise StoreError(f"Store busy: no connection available within {self.timeout}s.")
        try:
            if self._conn is None:
                raise StoreError("Store connection is closed.")
            deadline = time.monotonic() + self.timeout
            self._conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
            try:
                yield self._conn
            except sqlite3.OperationalError as e:
                if "interrupted" in str(e):
                    raise StoreError(f"Statement timed out after {self.timeout}s.") from e
                raise StoreError(str(e)) from e
            except (sqlite3.Error, OverflowError) as e:
                # OverflowError: a bound int outside the sqlite INTEGER range.
                raise StoreError(str(e)) from e
            finally:
                self._conn.set_progress_handler(None, 0)
        finally:
            self._lock.release()

    def query(self, sql: str, params: Sequence[Any] = ()) -> Tuple[List[str], List[List[Any]]]:
        """Run a SELECT and return (column names, rows)."""
        with self._statement() as conn:
            cursor = conn.execute(sql, [_to_store(p) for p in params])
            rows = [list(row) for row in cursor.fetchall()]
            columns = [d[0] for d in cursor.description or ()]
            return columns, rows

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one command in its own transaction and return the affected row count."""
        with self._statement() as conn:
            with conn:
                cursor = conn.execute(sql, [_to_store(p) for p in params])
            return cursor.rowcount

    def ping(self) -> bool:
        try:
            self.query("SELECT 1")
            return True
        except StoreError:
            return False

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Database connection closed")


@contextmanager
def open_database(path: Optional[str] = None, timeout: Optional[float] = None) -> Iterator[Database]:
    """Open the store for the duration of the block and always close it."""
    db = Database.open(path, timeout)
    try:
        yield db
    finally:
        db.close()
