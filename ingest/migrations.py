"""Ordered schema migrations.

Applied once at startup. The schema version lives in ``PRAGMA user_version``;
each step runs in its own transaction together with the version bump, and
every step is written so that re-running it against an already-migrated
database is harmless.
"""

import sqlite3
from typing import Callable, List, Tuple, Union

from ingest.db import Storage
from ingest.logging_config import get_logger
from ingest.normalize import normalize_name

__all__ = [
    "MIGRATIONS",
    "apply_migrations",
    "get_schema_version",
    "latest_version",
]

logger = get_logger("migrations")

MigrationStep = Union[str, Callable[[Storage], None]]


INITIAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS supplier (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT UNIQUE NOT NULL,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS brand (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL
);
CREATE TABLE IF NOT EXISTS category (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_code TEXT,
    name TEXT NOT NULL,
    parent_id INTEGER,
    FOREIGN KEY (parent_id) REFERENCES category(id)
);
CREATE TABLE IF NOT EXISTS product (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sku TEXT UNIQUE,
    title TEXT NOT NULL,
    description TEXT,
    brand_id INTEGER,
    barcode TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (brand_id) REFERENCES brand(id)
);
CREATE TRIGGER IF NOT EXISTS trg_product_updated_at
AFTER UPDATE ON product FOR EACH ROW
BEGIN
    UPDATE product SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
CREATE TABLE IF NOT EXISTS product_category (
    product_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    PRIMARY KEY (product_id, category_id),
    FOREIGN KEY (product_id) REFERENCES product(id),
    FOREIGN KEY (category_id) REFERENCES category(id)
);
CREATE TABLE IF NOT EXISTS supplier_offer (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id INTEGER NOT NULL,
    supplier_sku TEXT NOT NULL,
    product_id INTEGER,
    title TEXT,
    price NUMERIC,
    currency TEXT,
    stock INTEGER,
    url TEXT,
    data_json TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (supplier_id, supplier_sku),
    FOREIGN KEY (supplier_id) REFERENCES supplier(id),
    FOREIGN KEY (product_id) REFERENCES product(id)
);
CREATE TRIGGER IF NOT EXISTS trg_supplier_offer_updated_at
AFTER UPDATE ON supplier_offer FOR EACH ROW
BEGIN
    UPDATE supplier_offer SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
CREATE TABLE IF NOT EXISTS property (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL
);
CREATE TABLE IF NOT EXISTS product_property (
    product_id INTEGER NOT NULL,
    property_id INTEGER NOT NULL,
    value_text TEXT,
    value_number REAL,
    value_json TEXT,
    PRIMARY KEY (product_id, property_id),
    FOREIGN KEY (product_id) REFERENCES product(id),
    FOREIGN KEY (property_id) REFERENCES property(id)
);
CREATE TABLE IF NOT EXISTS image (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL,
    url TEXT NOT NULL,
    position INTEGER DEFAULT 0,
    FOREIGN KEY (product_id) REFERENCES product(id)
);
CREATE TABLE IF NOT EXISTS raw_import (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id INTEGER NOT NULL,
    batch_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (supplier_id) REFERENCES supplier(id)
);
CREATE TABLE IF NOT EXISTS import_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id INTEGER NOT NULL,
    batch_id TEXT NOT NULL,
    status TEXT NOT NULL,
    message TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (supplier_id) REFERENCES supplier(id)
);

CREATE INDEX IF NOT EXISTS idx_supplier_offer_product ON supplier_offer(product_id);
CREATE INDEX IF NOT EXISTS idx_raw_import_batch ON raw_import(supplier_id, batch_id);
CREATE INDEX IF NOT EXISTS idx_import_log_batch ON import_log(supplier_id, batch_id);
CREATE INDEX IF NOT EXISTS idx_image_product ON image(product_id);
"""


def _add_category_name_norm(storage: Storage) -> None:
    """Add category.name_norm, backfill it, and make siblings unique by it."""
    columns = {row["name"] for row in storage.query_all("PRAGMA table_info(category)")}
    if "name_norm" not in columns:
        storage.execute("ALTER TABLE category ADD COLUMN name_norm TEXT")

    # SQLite's lower() only folds ASCII, so the backfill runs in Python
    rows = storage.query_all("SELECT id, name FROM category WHERE name_norm IS NULL")
    for row in rows:
        storage.execute(
            "UPDATE category SET name_norm = ? WHERE id = ?",
            (normalize_name(row["name"]), row["id"]),
        )

    _merge_duplicate_siblings(storage)
    storage.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_category_sibling_norm
        ON category(IFNULL(parent_id, 0), name_norm)
    """)


def _merge_duplicate_siblings(storage: Storage) -> None:
    """Fold siblings that only differ by case/whitespace into the lowest id.

    Children, product links and supplier map entries move to the kept node.
    Merging two parents can make their children collide, so groups are
    re-read until none are left.
    """
    tables = {row["name"] for row in storage.query_all("SELECT name FROM sqlite_master WHERE type = 'table'")}
    while True:
        groups = storage.query_all("""
            SELECT MIN(id) AS keep_id, GROUP_CONCAT(id) AS ids
            FROM category
            GROUP BY IFNULL(parent_id, 0), name_norm
            HAVING COUNT(*) > 1
        """)
        if not groups:
            return
        for group in groups:
            keep_id = group["keep_id"]
            for dup_id in (int(i) for i in group["ids"].split(",")):
                if dup_id == keep_id:
                    continue
                logger.info(f"Merging duplicate category {dup_id} into {keep_id}")
                storage.execute("UPDATE category SET parent_id = ? WHERE parent_id = ?", (keep_id, dup_id))
                storage.execute("""
                    INSERT OR IGNORE INTO product_category (product_id, category_id)
                    SELECT product_id, ? FROM product_category WHERE category_id = ?
                """, (keep_id, dup_id))
                storage.execute("DELETE FROM product_category WHERE category_id = ?", (dup_id,))
                if "supplier_category_map" in tables:
                    storage.execute(
                        "UPDATE supplier_category_map SET category_id = ? WHERE category_id = ?",
                        (keep_id, dup_id),
                    )
                storage.execute("DELETE FROM category WHERE id = ?", (dup_id,))


SUPPLIER_CATEGORY_MAP = """
CREATE TABLE IF NOT EXISTS supplier_category_map (
    supplier_id INTEGER NOT NULL,
    path_key TEXT NOT NULL,
    category_id INTEGER NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (supplier_id, path_key),
    FOREIGN KEY (supplier_id) REFERENCES supplier(id),
    FOREIGN KEY (category_id) REFERENCES category(id)
);
"""

PRODUCT_BARCODE_UNIQUE = """
CREATE UNIQUE INDEX IF NOT EXISTS ux_product_barcode
ON product(barcode) WHERE barcode IS NOT NULL;
"""

# Collapse images re-inserted by earlier append-only imports, then keep one
# row per (product, url)
IMAGE_DEDUPLICATION = """
DELETE FROM image
WHERE id NOT IN (SELECT MIN(id) FROM image GROUP BY product_id, url);
CREATE UNIQUE INDEX IF NOT EXISTS ux_image_product_url ON image(product_id, url);
"""


MIGRATIONS: List[Tuple[int, str, MigrationStep]] = [
    (1, "initial schema", INITIAL_SCHEMA),
    (2, "normalized category names", _add_category_name_norm),
    (3, "supplier category map", SUPPLIER_CATEGORY_MAP),
    (4, "unique product barcode", PRODUCT_BARCODE_UNIQUE),
    (5, "deduplicate product images", IMAGE_DEDUPLICATION),
]


def latest_version() -> int:
    return MIGRATIONS[-1][0]


def get_schema_version(storage: Storage) -> int:
    return int(storage.scalar("PRAGMA user_version") or 0)


def _run_step(storage: Storage, version: int, step: MigrationStep) -> None:
    if callable(step):
        with storage.transaction():
            step(storage)
            storage.execute(f"PRAGMA user_version = {int(version)}")
        return

    script = f"BEGIN IMMEDIATE;\n{step}\nPRAGMA user_version = {int(version)};\nCOMMIT;"
    try:
        storage.conn.executescript(script)
    except sqlite3.Error:
        if storage.conn.in_transaction:
            storage.conn.execute("ROLLBACK")
        raise


def apply_migrations(storage: Storage) -> int:
    """Bring the schema up to date.

    Returns:
        Number of migration steps applied.
    """
    current = get_schema_version(storage)
    applied = 0
    for version, description, step in MIGRATIONS:
        if version <= current:
            continue
        logger.info(f"Applying migration {version}: {description}")
        _run_step(storage, version, step)
        applied += 1
    return applied
