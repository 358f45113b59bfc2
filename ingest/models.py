"""Data models for normalized feed records and run outcomes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

__all__ = ["NormalizedOffer", "RunResult"]


@dataclass
class NormalizedOffer:
    """One supplier record after scalar normalization.

    Core fields feed the product and supplier_offer tables; properties and
    images are attached to the canonical product.
    """

    # Required fields
    supplier_sku: str
    title: str

    # Canonical product fields
    sku: Optional[str] = None
    barcode: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None

    # Offer fields
    price: Optional[float] = None
    currency: Optional[str] = None
    stock: Optional[int] = None
    url: Optional[str] = None

    # Raw category names, root -> leaf
    category_path: List[str] = field(default_factory=list)

    # Property name -> str / float / bool value
    properties: Dict[str, Any] = field(default_factory=dict)

    image_urls: List[str] = field(default_factory=list)

    # Record exactly as parsed from the feed
    raw: Any = None

    # Database ID of the canonical product (set after upsert)
    product_id: Optional[int] = None


@dataclass
class RunResult:
    """Outcome of one adapter run."""

    code: str
    batch_id: str
    status: str
    count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"
