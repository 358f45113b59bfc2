"""Supplier adapters, one per feed."""

from typing import Dict, Type

from ingest.adapters.base import FeedAdapter
from ingest.adapters.euroklimate import EuroklimateAdapter
from ingest.adapters.generalclimate import GeneralClimateAdapter
from ingest.adapters.mhi import MHIAdapter
from ingest.errors import ConfigurationError

__all__ = [
    "ADAPTERS",
    "FeedAdapter",
    "GeneralClimateAdapter",
    "EuroklimateAdapter",
    "MHIAdapter",
    "get_adapter_class",
]

# Registration order is the run-all order
ADAPTERS: Dict[str, Type[FeedAdapter]] = {
    GeneralClimateAdapter.code: GeneralClimateAdapter,
    EuroklimateAdapter.code: EuroklimateAdapter,
    MHIAdapter.code: MHIAdapter,
}


def get_adapter_class(code: str) -> Type[FeedAdapter]:
    """Adapter class for a supplier code.

    Raises:
        ConfigurationError: If no adapter is registered under ``code``.
    """
    try:
        return ADAPTERS[code]
    except KeyError:
        raise ConfigurationError(
            f"Unknown supplier: {code}. Available: {', '.join(ADAPTERS)}"
        ) from None
