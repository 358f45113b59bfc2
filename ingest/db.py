"""SQLite storage handle for the importer.

One ``Storage`` is opened per process run and handed to the adapters and
the category resolver. The connection runs in autocommit mode, so every
single-statement upsert is its own unit of work; multi-statement operations
use ``Storage.transaction()``.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

from ingest.config import DB_PATH

__all__ = [
    "DEFAULT_DB_PATH",
    "Storage",
    "open_storage",
    "get_table_counts",
    "get_last_imports",
    "TABLES",
]

DEFAULT_DB_PATH = DB_PATH

TABLES = (
    "supplier",
    "brand",
    "category",
    "product",
    "product_category",
    "supplier_offer",
    "property",
    "product_property",
    "image",
    "raw_import",
    "import_log",
    "supplier_category_map",
)


class Storage:
    """Explicitly opened connection to the catalog database.

    Usage:
        storage = Storage("data/central.db").open()
        try:
            storage.execute("SELECT 1")
        finally:
            storage.close()
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage is not open")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "Storage":
        """Connect, enabling WAL journaling and foreign keys."""
        if self._conn is not None:
            return self
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        self._conn = conn
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Storage":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Run several statements as one unit of work.

        Takes the write lock up front (BEGIN IMMEDIATE) so a read-then-write
        sequence cannot interleave with another writer. Nested calls join
        the outer transaction.
        """
        cursor = self.conn.cursor()
        if self._in_transaction:
            yield cursor
            return

        cursor.execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield cursor
            cursor.execute("COMMIT")
        except BaseException:
            # a failed COMMIT leaves the transaction open
            if self.conn.in_transaction:
                cursor.execute("ROLLBACK")
            raise
        finally:
            self._in_transaction = False
            cursor.close()

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, tuple(params))

    def query_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, tuple(params)).fetchone()

    def query_all(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        return self.conn.execute(sql, tuple(params)).fetchall()

    def scalar(self, sql: str, params: Iterable[Any] = ()) -> Any:
        row = self.query_one(sql, params)
        return row[0] if row is not None else None


@contextmanager
def open_storage(db_path: str = DEFAULT_DB_PATH, migrate: bool = True) -> Generator[Storage, None, None]:
    """Context manager for a storage handle with the schema brought up to date."""
    from ingest.migrations import apply_migrations

    storage = Storage(db_path).open()
    try:
        if migrate:
            apply_migrations(storage)
        yield storage
    finally:
        storage.close()


def get_table_counts(storage: Storage) -> Dict[str, int]:
    """Row count for every catalog table."""
    return {table: storage.scalar(f"SELECT COUNT(*) FROM {table}") for table in TABLES}


def get_last_imports(storage: Storage) -> List[Dict[str, Any]]:
    """Latest import_log row per supplier (suppliers never imported included)."""
    rows = storage.query_all("""
        SELECT s.code, s.name, l.batch_id, l.status, l.message, l.created_at
        FROM supplier s
        LEFT JOIN import_log l ON l.id = (
            SELECT id FROM import_log WHERE supplier_id = s.id ORDER BY id DESC LIMIT 1
        )
        ORDER BY s.code
    """)
    return [dict(row) for row in rows]
