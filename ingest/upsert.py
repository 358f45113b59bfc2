"""Idempotent create-or-update operations for catalog entities.

Every function is one unit of work against the shared store: either a
single INSERT ... ON CONFLICT statement or, where identity has to be
resolved first, a short BEGIN IMMEDIATE transaction. Dictionary lookups
(brand, property) use insert-ignore-then-select so concurrent runs cannot
create duplicates.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from ingest.config import SUPPLIER_SPECS
from ingest.db import Storage
from ingest.errors import ConfigurationError
from ingest.normalize import to_str

__all__ = [
    "upsert_brand",
    "upsert_product",
    "update_product",
    "find_offer_product",
    "link_product_to_categories",
    "upsert_supplier_offer",
    "set_product_property",
    "add_images",
    "record_raw_import",
    "write_import_log",
    "get_supplier_id",
    "ensure_suppliers",
]


def upsert_brand(storage: Storage, name: Optional[str]) -> Optional[int]:
    """Insert a brand if unseen and return its id; None for an absent name."""
    name = to_str(name)
    if name is None:
        return None
    storage.execute("INSERT INTO brand (name) VALUES (?) ON CONFLICT(name) DO NOTHING", (name,))
    return storage.scalar("SELECT id FROM brand WHERE name = ?", (name,))


def upsert_product(
    storage: Storage,
    title: str,
    sku: Optional[str] = None,
    barcode: Optional[str] = None,
    brand_id: Optional[int] = None,
    description: Optional[str] = None,
) -> int:
    """Insert or update a canonical product, returning its ID.

    Identity is resolved by barcode first, then SKU; with neither matching
    a new row is inserted. Title, brand and description of a matched row
    are overwritten.
    """
    with storage.transaction() as cursor:
        if barcode:
            row = cursor.execute("SELECT id FROM product WHERE barcode = ?", (barcode,)).fetchone()
            if row is not None:
                cursor.execute(
                    "UPDATE product SET title = ?, brand_id = ?, description = ? WHERE id = ?",
                    (title, brand_id, description, row["id"]),
                )
                return row["id"]

        if sku:
            row = cursor.execute("SELECT id FROM product WHERE sku = ?", (sku,)).fetchone()
            if row is not None:
                cursor.execute("""
                    UPDATE product SET
                        title = ?,
                        brand_id = ?,
                        barcode = COALESCE(?, barcode),
                        description = ?
                    WHERE id = ?
                """, (title, brand_id, barcode, description, row["id"]))
                return row["id"]

        cursor.execute("""
            INSERT INTO product (sku, title, brand_id, barcode, description)
            VALUES (?, ?, ?, ?, ?)
        """, (sku, title, brand_id, barcode, description))
        return cursor.lastrowid


def update_product(
    storage: Storage,
    product_id: int,
    title: str,
    brand_id: Optional[int] = None,
    description: Optional[str] = None,
) -> int:
    """Overwrite the mutable fields of a known product."""
    storage.execute(
        "UPDATE product SET title = ?, brand_id = ?, description = ? WHERE id = ?",
        (title, brand_id, description, product_id),
    )
    return product_id


def find_offer_product(storage: Storage, supplier_id: int, supplier_sku: str) -> Optional[int]:
    """Product currently linked to a supplier offer, if the offer exists."""
    return storage.scalar(
        "SELECT product_id FROM supplier_offer WHERE supplier_id = ? AND supplier_sku = ?",
        (supplier_id, supplier_sku),
    )


def link_product_to_categories(storage: Storage, product_id: int, category_ids: Iterable[int]) -> None:
    """Associate a product with categories; existing links are left alone."""
    for category_id in category_ids:
        storage.execute(
            "INSERT OR IGNORE INTO product_category (product_id, category_id) VALUES (?, ?)",
            (product_id, category_id),
        )


def upsert_supplier_offer(
    storage: Storage,
    supplier_id: int,
    supplier_sku: str,
    product_id: Optional[int],
    title: Optional[str] = None,
    price: Optional[float] = None,
    currency: Optional[str] = None,
    stock: Optional[int] = None,
    url: Optional[str] = None,
    data: Any = None,
) -> None:
    """Insert or merge the offer keyed by (supplier_id, supplier_sku).

    Price, currency, stock and the raw data always take the latest values;
    title and url keep their previous values when the new ones are absent.
    """
    data_json = json.dumps(data, ensure_ascii=False, default=str) if data is not None else None
    storage.execute("""
        INSERT INTO supplier_offer
            (supplier_id, supplier_sku, product_id, title, price, currency, stock, url, data_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(supplier_id, supplier_sku) DO UPDATE SET
            product_id = excluded.product_id,
            title = COALESCE(excluded.title, supplier_offer.title),
            price = excluded.price,
            currency = excluded.currency,
            stock = excluded.stock,
            url = COALESCE(excluded.url, supplier_offer.url),
            data_json = excluded.data_json,
            updated_at = CURRENT_TIMESTAMP
    """, (supplier_id, supplier_sku, product_id, title, price, currency, stock, url, data_json))


def set_product_property(storage: Storage, product_id: int, name: str, value: Any) -> None:
    """Set one property value on a product.

    The value lands in exactly one slot chosen by its type: numbers in
    value_number, booleans and structures in value_json, everything else
    in value_text.
    """
    storage.execute("INSERT INTO property (name) VALUES (?) ON CONFLICT(name) DO NOTHING", (name,))
    property_id = storage.scalar("SELECT id FROM property WHERE name = ?", (name,))

    value_text = value_number = value_json = None
    if isinstance(value, bool) or isinstance(value, (dict, list)):
        value_json = json.dumps(value, ensure_ascii=False)
    elif isinstance(value, (int, float)):
        value_number = value
    else:
        value_text = str(value)

    storage.execute("""
        INSERT INTO product_property (product_id, property_id, value_text, value_number, value_json)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(product_id, property_id) DO UPDATE SET
            value_text = excluded.value_text,
            value_number = excluded.value_number,
            value_json = excluded.value_json
    """, (product_id, property_id, value_text, value_number, value_json))


def add_images(storage: Storage, product_id: int, urls: Iterable[str]) -> None:
    """Attach images in order, position = index in ``urls``.

    One row per (product, url): an image seen again keeps its row and takes
    the new position.
    """
    for position, url in enumerate(urls):
        storage.execute("""
            INSERT INTO image (product_id, url, position) VALUES (?, ?, ?)
            ON CONFLICT(product_id, url) DO UPDATE SET position = excluded.position
        """, (product_id, url, position))


# =============================================================================
# Audit trail and suppliers
# =============================================================================

def record_raw_import(storage: Storage, supplier_id: int, batch_id: str, payload: Any) -> None:
    """Append a record exactly as received."""
    storage.execute(
        "INSERT INTO raw_import (supplier_id, batch_id, payload) VALUES (?, ?, ?)",
        (supplier_id, batch_id, json.dumps(payload, ensure_ascii=False, default=str)),
    )


def write_import_log(storage: Storage, supplier_id: int, batch_id: str, status: str, message: str) -> None:
    """Write the terminal status row of a run."""
    storage.execute(
        "INSERT INTO import_log (supplier_id, batch_id, status, message) VALUES (?, ?, ?, ?)",
        (supplier_id, batch_id, status, message),
    )


def get_supplier_id(storage: Storage, code: str) -> int:
    """Look up a seeded supplier.

    Raises:
        ConfigurationError: If the supplier has not been set up.
    """
    supplier_id = storage.scalar("SELECT id FROM supplier WHERE code = ?", (code,))
    if supplier_id is None:
        raise ConfigurationError(f"Supplier {code!r} is not registered; run `ingest setup` first")
    return supplier_id


def ensure_suppliers(storage: Storage, specs: Optional[Dict[str, Dict[str, Any]]] = None) -> List[str]:
    """Seed the supplier table from the registry. Returns the codes inserted."""
    inserted: List[str] = []
    for code, spec in (specs or SUPPLIER_SPECS).items():
        cursor = storage.execute(
            "INSERT OR IGNORE INTO supplier (code, name) VALUES (?, ?)",
            (code, spec["name"]),
        )
        if cursor.rowcount:
            inserted.append(code)
    return inserted
