"""Shared run loop for supplier feed adapters.

A run goes: resolve supplier -> read feed URLs -> fetch every URL -> parse
-> for each record {persist raw, normalize, resolve categories, upsert
product, upsert offer, set properties, add images} -> write import_log.

Records are written one by one with no run-wide transaction: if record N
fails, records 0..N-1 stay committed, the run is logged as ``error`` and the
exception propagates to the caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ingest.categories import CategoryResolver
from ingest.config import DEFAULT_TITLE, REQUEST_TIMEOUT, get_feed_urls, get_supplier_spec
from ingest.db import Storage
from ingest.errors import ConfigurationError, IngestError, RecordError
from ingest.feeds import parse_json_feed
from ingest.http import fetch_feed
from ingest.logging_config import get_logger, log_import_event
from ingest.mapping import (
    collect_values,
    map_dynamic_properties,
    map_properties,
    pick_field,
    pick_first,
    text_of,
)
from ingest.models import NormalizedOffer
from ingest.normalize import normalize_currency, to_decimal, to_int, to_str, to_text
from ingest.upsert import (
    add_images,
    find_offer_product,
    get_supplier_id,
    link_product_to_categories,
    record_raw_import,
    set_product_property,
    update_product,
    upsert_brand,
    upsert_product,
    upsert_supplier_offer,
    write_import_log,
)
from ingest.url_validation import clean_link, validate_feed_url

__all__ = ["FeedAdapter", "FetchFunc"]

logger = get_logger("adapters")

FetchFunc = Callable[..., bytes]


class FeedAdapter:
    """Base adapter: one supplier feed, mapped through its SUPPLIER_SPECS entry.

    Subclasses set ``code`` and override the hooks where a vendor's feed
    needs more than the registry rules (``parse``, ``parse_price``,
    ``category_path``, ``extra_properties``).
    """

    code: str = ""

    def __init__(
        self,
        storage: Storage,
        spec: Optional[Dict[str, Any]] = None,
        fetch: FetchFunc = fetch_feed,
    ):
        self.storage = storage
        self.spec = spec if spec is not None else get_supplier_spec(self.code)
        if self.spec is None:
            raise ConfigurationError(f"No feed configuration for supplier {self.code!r}")
        self.fetch = fetch
        self.resolver = CategoryResolver(
            storage,
            match=self.spec.get("category_match", "exact"),
            memoize=self.spec.get("memoize_categories", False),
        )
        self.base_url: Optional[str] = None

    # ------------------------------------------------------------------
    # Feed retrieval
    # ------------------------------------------------------------------

    def feed_urls(self) -> List[str]:
        return [validate_feed_url(url) for url in get_feed_urls(self.code)]

    def parse(self, body: bytes) -> List[Any]:
        """Split a feed body into records."""
        return parse_json_feed(body)

    def load_records(self, urls: List[str]) -> List[Any]:
        """Fetch and parse every feed URL before any record is processed."""
        timeout = self.spec.get("timeout", REQUEST_TIMEOUT)
        records: List[Any] = []
        for url in urls:
            body = self.fetch(url, timeout=timeout)
            items = self.parse(body)
            log_import_event("feed_fetched", {
                "message": f"{self.code}: {len(items)} records from {url}",
                "supplier": self.code,
                "url": url,
                "bytes": len(body),
                "records": len(items),
            })
            records.extend(items)
        return records

    # ------------------------------------------------------------------
    # Normalization hooks
    # ------------------------------------------------------------------

    def field(self, record: Any, name: str) -> Any:
        """First non-empty source value for a canonical field, else its default."""
        value = pick_first(record, self.spec.get("fields", {}).get(name, ()))
        if value is None:
            value = self.spec.get("defaults", {}).get(name)
        return value

    def parse_price(self, record: Any) -> Tuple[Optional[float], Optional[str]]:
        price = to_decimal(self.field(record, "price"))
        currency = normalize_currency(self.field(record, "currency"))
        return price, currency

    def category_path(self, record: Any) -> List[str]:
        path = []
        for source in self.spec.get("category_fields", ()):
            name = to_str(text_of(pick_field(record, source)))
            if name is not None:
                path.append(name)
        return path

    def extra_properties(self, record: Any) -> Dict[str, Any]:
        return {}

    def image_urls(self, record: Any) -> List[str]:
        urls: List[str] = []
        for raw in collect_values(record, self.spec.get("image_fields", ())):
            url = clean_link(raw, self.base_url)
            if url and url not in urls:
                urls.append(url)
        return urls

    def normalize(self, record: Any) -> NormalizedOffer:
        """Map one parsed record to a NormalizedOffer."""
        if not isinstance(record, dict):
            raise TypeError(f"expected an object, got {type(record).__name__}")

        title = to_str(self.field(record, "title")) or DEFAULT_TITLE
        price, currency = self.parse_price(record)

        properties = map_properties(self.spec, record)
        properties.update(map_dynamic_properties(self.spec, record))
        properties.update(self.extra_properties(record))

        url = self.field(record, "url")
        return NormalizedOffer(
            supplier_sku=to_str(self.field(record, "supplier_sku")) or title,
            title=title,
            sku=to_str(self.field(record, "sku")),
            barcode=to_str(self.field(record, "barcode")),
            brand=to_str(self.field(record, "brand")),
            description=to_text(self.field(record, "description")),
            price=price,
            currency=currency,
            stock=to_int(self.field(record, "stock")),
            url=clean_link(to_str(url), self.base_url) if url is not None else None,
            category_path=self.category_path(record),
            properties=properties,
            image_urls=self.image_urls(record),
            raw=record,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, supplier_id: int, offer: NormalizedOffer) -> int:
        """Write one normalized offer and everything hanging off its product."""
        storage = self.storage
        category_ids = self.resolver.resolve(offer.category_path, supplier_id)
        brand_id = upsert_brand(storage, offer.brand)

        # Records without SKU/barcode keep the product their offer already points at
        product_id = None
        if not offer.sku and not offer.barcode:
            product_id = find_offer_product(storage, supplier_id, offer.supplier_sku)
        if product_id is not None:
            update_product(storage, product_id, offer.title, brand_id, offer.description)
        else:
            product_id = upsert_product(
                storage,
                title=offer.title,
                sku=offer.sku,
                barcode=offer.barcode,
                brand_id=brand_id,
                description=offer.description,
            )
        offer.product_id = product_id

        if category_ids:
            link_product_to_categories(storage, product_id, category_ids)

        upsert_supplier_offer(
            storage,
            supplier_id=supplier_id,
            supplier_sku=offer.supplier_sku,
            product_id=product_id,
            title=offer.title,
            price=offer.price,
            currency=offer.currency,
            stock=offer.stock,
            url=offer.url,
            data=offer.raw,
        )

        for name, value in offer.properties.items():
            set_product_property(storage, product_id, name, value)

        if offer.image_urls:
            add_images(storage, product_id, offer.image_urls)

        return product_id

    def run(self, batch_id: str) -> int:
        """Import the supplier's feed(s) under ``batch_id``.

        Returns:
            Number of records imported.

        Raises:
            ConfigurationError: Supplier not set up (nothing is logged) or
                feed URL missing (logged as error)
            TransportError, FeedParseError, RecordError: Run aborted and
                logged as error
        """
        supplier_id = get_supplier_id(self.storage, self.code)
        log_import_event("run_start", {
            "message": f"{self.code}: import started (batch {batch_id})",
            "supplier": self.code,
            "batch_id": batch_id,
        })

        try:
            urls = self.feed_urls()
            self.base_url = urls[0]
            records = self.load_records(urls)

            count = 0
            for position, record in enumerate(records):
                record_raw_import(self.storage, supplier_id, batch_id, record)
                try:
                    offer = self.normalize(record)
                except IngestError:
                    raise
                except (TypeError, ValueError, KeyError, AttributeError) as e:
                    raise RecordError(str(e), position) from e
                self.save(supplier_id, offer)
                count += 1
                logger.debug(f"{self.code}: [{position + 1}/{len(records)}] {offer.supplier_sku}")

            write_import_log(self.storage, supplier_id, batch_id, "ok", f"Imported: {count}")
        except Exception as e:
            write_import_log(self.storage, supplier_id, batch_id, "error", str(e))
            log_import_event("run_error", {
                "message": f"{self.code}: import failed: {e}",
                "supplier": self.code,
                "batch_id": batch_id,
                "error": str(e),
                "error_type": type(e).__name__,
            }, level=logging.ERROR)
            raise

        log_import_event("run_complete", {
            "message": f"{self.code}: imported {count} records",
            "supplier": self.code,
            "batch_id": batch_id,
            "records": count,
        })
        return count
