"""Mitsubishi Heavy Industries JSON feeds (several URLs per run)."""

from typing import Any, Optional, Tuple

from ingest.adapters.base import FeedAdapter
from ingest.normalize import to_decimal

__all__ = ["MHIAdapter"]


class MHIAdapter(FeedAdapter):
    """Catalog export split over several files, sections as category path.

    Prices are usually blank; a currency is only recorded alongside a price.
    """

    code = "mhi"

    def parse_price(self, record: Any) -> Tuple[Optional[float], Optional[str]]:
        price = to_decimal(self.field(record, "price"))
        return price, ("RUB" if price is not None else None)
