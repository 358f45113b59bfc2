"""General Climate JSON feed."""

from typing import Any, Optional, Tuple

from ingest.adapters.base import FeedAdapter
from ingest.normalize import normalize_currency, to_decimal

__all__ = ["GeneralClimateAdapter"]

# Price fields arrive as "45990#CURRENCY#" templates from the shop engine
CURRENCY_PLACEHOLDER = "#CURRENCY#"


class GeneralClimateAdapter(FeedAdapter):
    """Flat JSON objects; equipment type and series form the category path."""

    code = "generalclimate"

    def parse_price(self, record: Any) -> Tuple[Optional[float], Optional[str]]:
        raw = self.field(record, "price")
        price = to_decimal(str(raw).replace(CURRENCY_PLACEHOLDER, "")) if raw is not None else None
        # The feed carries no currency field; the registry default applies
        return price, normalize_currency(self.field(record, "currency"))
