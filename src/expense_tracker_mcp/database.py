"""SQLite record store for users, categories, transactions and insights."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Iterator


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    email         TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    created_at    TEXT NOT NULL    -- ISO-8601 timestamp
);

CREATE TABLE IF NOT EXISTS categories (
    id      INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,      -- users.id
    name    TEXT NOT NULL,
    type    TEXT NOT NULL CHECK (type IN ('income', 'expense'))
);

CREATE TABLE IF NOT EXISTS transactions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL,  -- users.id
    category_id INTEGER NOT NULL,  -- categories.id
    type        TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    amount      REAL NOT NULL CHECK (amount > 0),
    date        TEXT NOT NULL,     -- 'YYYY-MM-DD'
    note        TEXT
);

-- Reserved: insights are recomputed on every read
CREATE TABLE IF NOT EXISTS insights (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id    INTEGER NOT NULL,
    message    TEXT NOT NULL,
    level      TEXT NOT NULL CHECK (level IN ('info', 'warning')),
    created_at TEXT NOT NULL
);
"""

INDEXES = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email);
CREATE INDEX IF NOT EXISTS idx_categories_user_id ON categories(user_id);
CREATE INDEX IF NOT EXISTS idx_tx_user_id ON transactions(user_id);
CREATE INDEX IF NOT EXISTS idx_tx_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_insights_user_id ON insights(user_id);
"""

# Collection name -> (writable columns, {index name: unique})
COLLECTIONS: dict[str, tuple[tuple[str, ...], dict[str, bool]]] = {
    "users": (("email", "password_hash", "created_at"), {"email": True}),
    "categories": (("user_id", "name", "type"), {"user_id": False}),
    "transactions": (
        ("user_id", "category_id", "type", "amount", "date", "note"),
        {"user_id": False, "date": False},
    ),
    "insights": (("user_id", "message", "level", "created_at"), {"user_id": False}),
}

KINDS = ("income", "expense")
LEVELS = ("info", "warning")


class StoreError(Exception):
    """Base class for record store errors."""

    pass


class StorageUnavailable(StoreError):
    """The underlying SQLite database cannot be opened or used."""

    pass


class ConstraintViolation(StoreError):
    """A write was rejected before persistence (uniqueness, value or reference check)."""

    pass


class NotFound(StoreError):
    """A record required by the caller does not exist."""

    pass


class Database:
    """SQLite database wrapper for the expense tracker."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database handle.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        # Serializes every write so check-then-insert runs as one unit
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection.

        Raises:
            StorageUnavailable: If the database file cannot be opened.
        """
        with self._lock:
            if self._conn is None:
                try:
                    conn = sqlite3.connect(self.db_path, check_same_thread=False)
                    conn.row_factory = sqlite3.Row
                    # WAL only makes sense for file-based DBs
                    if self.db_path != ":memory:":
                        conn.execute("PRAGMA journal_mode=WAL")
                except sqlite3.Error as e:
                    raise StorageUnavailable(
                        f"Cannot open database {self.db_path}: {e}"
                    ) from e
                self._conn = conn
            return self._conn

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def exclusive(self) -> Iterator["Database"]:
        """Hold the write lock across several store calls.

        Other writers on this handle wait until the block exits. Store
        methods called inside the block re-enter the lock.
        """
        with self._lock:
            yield self

    def schema_version(self) -> int:
        """Get the schema version stored in the database file."""
        conn = self.connect()
        with self._lock:
            row = conn.execute("PRAGMA user_version").fetchone()
        return row[0]

    def init_schema(self, version: int = SCHEMA_VERSION) -> None:
        """Create all collections and indexes for the given schema version.

        Repeated calls at the same version are no-ops.

        Raises:
            StorageUnavailable: If the database cannot be opened or was
                created by a newer schema version.
        """
        conn = self.connect()
        with self._lock:
            try:
                current = conn.execute("PRAGMA user_version").fetchone()[0]
                if current > version:
                    raise StorageUnavailable(
                        f"Database schema version {current} is newer than {version}"
                    )
                if current == version:
                    logger.debug("Schema already at version %s", version)
                    return
                conn.executescript(SCHEMA)
                conn.executescript(INDEXES)
                # PRAGMA does not accept bound parameters
                conn.execute(f"PRAGMA user_version = {int(version)}")
                conn.commit()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Cannot initialize schema: {e}") from e
        logger.info("Schema upgraded from version %s to %s", current, version)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Validate and insert a record, assigning a fresh id.

        Uniqueness and reference checks run in the same critical section as
        the write, so no other writer can interleave a conflicting insert.

        Returns:
            The stored columns with the assigned "id".

        Raises:
            ConstraintViolation: If the record is rejected.
            StorageUnavailable: On storage-medium errors.
        """
        columns, _ = _collection(collection)
        values = {col: record.get(col) for col in columns}
        _validate(collection, values)

        conn = self.connect()
        with self._lock:
            try:
                self._check_constraints(conn, collection, values)
                placeholders = ", ".join("?" * len(columns))
                cursor = conn.execute(
                    f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})",  # noqa: S608
                    tuple(values[col] for col in columns),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ConstraintViolation(f"Rejected {collection} record: {e}") from e
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Insert into {collection} failed: {e}") from e

        return {**values, "id": cursor.lastrowid}

    def bulk_insert(
        self, collection: str, records: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert many records; rejected ones are logged and skipped.

        Each record is inserted as its own atomic unit.
        """
        inserted = []
        for record in records:
            try:
                inserted.append(self.insert(collection, record))
            except ConstraintViolation as e:
                logger.warning("Skipping %s record: %s", collection, e)
        return inserted

    def delete_by_id(self, collection: str, record_id: int) -> bool:
        """Delete a record by id.

        Deleting an id that does not exist is a successful no-op.

        Returns:
            True if a record was removed.
        """
        _collection(collection)
        conn = self.connect()
        with self._lock:
            try:
                cursor = conn.execute(
                    f"DELETE FROM {collection} WHERE id = ?", (int(record_id),)  # noqa: S608
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Delete from {collection} failed: {e}") from e
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_by_id(self, collection: str, record_id: int) -> dict[str, Any] | None:
        """Get a record by id, or None."""
        _collection(collection)
        rows = self._select(f"SELECT * FROM {collection} WHERE id = ?", (record_id,))  # noqa: S608
        return rows[0] if rows else None

    def require_by_id(self, collection: str, record_id: int) -> dict[str, Any]:
        """Get a record by id.

        Raises:
            NotFound: If no such record exists.
        """
        record = self.get_by_id(collection, record_id)
        if record is None:
            raise NotFound(f"No {collection} record with id {record_id}")
        return record

    def get_by_unique_index(
        self, collection: str, index: str, value: Any
    ) -> dict[str, Any] | None:
        """Look up at most one record through a unique index."""
        _, indexes = _collection(collection)
        if not indexes.get(index):
            raise ValueError(f"{collection}.{index} is not a unique index")
        rows = self._select(
            f"SELECT * FROM {collection} WHERE {index} = ? LIMIT 1", (value,)  # noqa: S608
        )
        return rows[0] if rows else None

    def get_all_by_index(
        self, collection: str, index: str, value: Any
    ) -> list[dict[str, Any]]:
        """Get all records matching an indexed field. Order is unspecified."""
        _, indexes = _collection(collection)
        if index not in indexes:
            raise ValueError(f"{collection} has no index {index!r}")
        return self._select(
            f"SELECT * FROM {collection} WHERE {index} = ?", (value,)  # noqa: S608
        )

    def count_table(self, table: str) -> int:
        """Count rows in a collection."""
        _collection(table)
        rows = self._select(f"SELECT COUNT(*) as cnt FROM {table}", ())  # noqa: S608
        return rows[0]["cnt"]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _select(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        conn = self.connect()
        with self._lock:
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Query failed: {e}") from e
        return [dict(row) for row in rows]

    def _check_constraints(
        self, conn: sqlite3.Connection, collection: str, values: dict[str, Any]
    ) -> None:
        """Unique-index and reference checks. Caller must hold the lock."""
        if collection == "users":
            row = conn.execute(
                "SELECT id FROM users WHERE email = ?", (values["email"],)
            ).fetchone()
            if row:
                raise ConstraintViolation("Email already registered")
            return

        if collection in ("categories", "transactions", "insights"):
            row = conn.execute(
                "SELECT id FROM users WHERE id = ?", (values["user_id"],)
            ).fetchone()
            if row is None:
                raise ConstraintViolation(f"User {values['user_id']} does not exist")

        if collection == "transactions":
            row = conn.execute(
                "SELECT user_id, type FROM categories WHERE id = ?",
                (values["category_id"],),
            ).fetchone()
            if row is None or row["user_id"] != values["user_id"]:
                raise ConstraintViolation(
                    f"Category {values['category_id']} does not exist for this user"
                )
            if row["type"] != values["type"]:
                raise ConstraintViolation(
                    f"Category {values['category_id']} does not accept {values['type']} transactions"
                )


def _collection(name: str) -> tuple[tuple[str, ...], dict[str, bool]]:
    if name not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {name}")
    return COLLECTIONS[name]


def _validate(collection: str, values: dict[str, Any]) -> None:
    """Field-level checks that need no database access."""
    missing = [
        col for col, value in values.items()
        if value is None and not (collection == "transactions" and col == "note")
    ]
    if missing:
        raise ConstraintViolation(
            f"Missing required {collection} fields: {', '.join(missing)}"
        )

    if collection in ("categories", "transactions") and values["type"] not in KINDS:
        raise ConstraintViolation(f"Invalid type: {values['type']!r}")

    if collection == "transactions":
        amount = values["amount"]
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ConstraintViolation("Amount must be a number")
        if amount <= 0:
            raise ConstraintViolation("Amount must be positive")
        if not is_iso_date(values["date"]):
            raise ConstraintViolation(f"Invalid date: {values['date']!r}")

    if collection == "insights" and values["level"] not in LEVELS:
        raise ConstraintViolation(f"Invalid level: {values['level']!r}")


def is_iso_date(value: Any) -> bool:
    """Check that value is a calendar date string in canonical 'YYYY-MM-DD' form."""
    if not isinstance(value, str):
        return False
    try:
        return date.fromisoformat(value).isoformat() == value
    except ValueError:
        return False
