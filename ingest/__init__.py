"""Supplier catalog feed importer package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from ingest.categories import (
    CategoryResolver,
    get_or_create_category_by_supplier_path,
    upsert_category_path,
)
from ingest.config import DB_PATH, SUPPLIER_SPECS, get_supplier_spec
from ingest.db import Storage, open_storage
from ingest.errors import (
    ConfigurationError,
    FeedParseError,
    IngestError,
    RecordError,
    TransportError,
)
from ingest.models import NormalizedOffer, RunResult
from ingest.runner import make_batch_id, run_all, run_supplier

__all__ = [
    # Version
    "__version__",
    # Config
    "DB_PATH",
    "SUPPLIER_SPECS",
    "get_supplier_spec",
    # Storage
    "Storage",
    "open_storage",
    # Models
    "NormalizedOffer",
    "RunResult",
    # Errors
    "IngestError",
    "ConfigurationError",
    "TransportError",
    "FeedParseError",
    "RecordError",
    # Core functions
    "CategoryResolver",
    "upsert_category_path",
    "get_or_create_category_by_supplier_path",
    "make_batch_id",
    "run_supplier",
    "run_all",
]
