"""Configuration and constants for the feed importer."""

import os
from typing import Any, Dict, List, Optional

from ingest.errors import ConfigurationError

__all__ = [
    "DB_PATH",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "DEFAULT_TITLE",
    "DEFAULT_CURRENCY",
    "LOG_LEVEL",
    "SUPPLIER_SPECS",
    "get_supplier_spec",
    "get_feed_urls",
]

# Storage location; the CLI also accepts --db
DB_PATH = os.getenv("DB_PATH", "data/central.db")

HEADERS = {
    "User-Agent": "ingest catalog importer",
    "Accept": "application/json, application/xml, text/xml, */*",
}

# Default fetch timeout in seconds (suppliers may override)
REQUEST_TIMEOUT = 60

# Fallbacks applied while normalizing records
DEFAULT_TITLE = "Без названия"
DEFAULT_CURRENCY = "RUB"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# =============================================================================
# Supplier Feed Definitions
# =============================================================================
# Each supplier maps to:
#   - name: Display name stored in the supplier table
#   - feed_env: Environment variable holding the feed URL(s), comma-separated
#   - timeout: Fetch timeout in seconds
#   - category_match: "exact" or "normalized" category name matching
#   - memoize_categories: Cache raw path -> leaf category per supplier
#   - fields: canonical field -> list of source paths (first non-empty wins)
#   - category_fields: source paths collected in order as the category path
#   - image_fields: source paths collected as image URLs (lists are flattened)
#   - properties: property name -> (source path, coercion kind)
#   - dynamic_properties: open property bag mapped key-by-key
#   - defaults: canonical field -> value used when the record has none

SupplierSpec = Dict[str, Any]

SUPPLIER_SPECS: Dict[str, SupplierSpec] = {
    "generalclimate": {
        "name": "General Climate",
        "feed_env": "GENERAL_CLIMATE_URL",
        "timeout": 30,
        "category_match": "exact",
        "memoize_categories": False,
        "fields": {
            "title": ["NAME"],
            "brand": ["BRAND"],
            "sku": ["CODE"],
            "supplier_sku": ["EXTID", "ID"],
            "description": ["PREVIEW_TEXT"],
            "price": ["PRICE"],
        },
        "category_fields": ["TYPE_oborud", "SERIES"],
        "image_fields": ["DETAIL_PICTURE", "PREVIEW_PICTURE"],
        "properties": {
            "Тип оборудования": ("TYPE_oborud", "str"),
            "Серия": ("SERIES", "str"),
            "Только холод": ("Only_cool", "bool"),
            "Хладагент": ("HLAD", "str"),
            "EER": ("EER", "decimal"),
            "COP": ("COP", "decimal"),
            "Производительность (охл), кВт": ("cooling_capacity", "decimal"),
            "Страна производитель": ("PROIZVODSTVO", "str"),
            "Уровень шума, дБА": ("LEVEL", "decimal"),
            "Питание": ("ELEKTROPITANIE", "str"),
            "Расход воздуха, м3/ч": ("AIR_max", "decimal"),
            "Вес нетто, кг": ("ves_netto", "decimal"),
            "Вес брутто, кг": ("ves_brutto", "decimal"),
            "Размер блока": ("size_blok", "str"),
            "Диапазон температур (холод)": ("range_temp_holod", "str"),
            "Заправка хладагента, кг": ("zapravka", "decimal"),
            "Компрессор": ("brand_compres", "str"),
            "Тип компрессора": ("type_compres", "str"),
        },
        "defaults": {"currency": "RUB"},
    },
    "euroklimate": {
        "name": "Euroklimat (EK)",
        "feed_env": "EK_YML_URL",
        "timeout": 60,
        "category_match": "normalized",
        "memoize_categories": True,
        "fields": {
            "title": ["name"],
            "brand": ["vendor"],
            "sku": ["vendorCode"],
            "barcode": ["barcode"],
            "supplier_sku": ["@id"],
            "description": ["description"],
            "price": ["price"],
            "currency": ["currencyId"],
            "url": ["url"],
            "stock": ["count", "stock_quantity"],
        },
        "image_fields": ["picture"],
        "properties": {},
    },
    "mhi": {
        "name": "Mitsubishi Heavy Industries (MHI)",
        "feed_env": "MHI_URLS",
        "timeout": 60,
        "category_match": "exact",
        "memoize_categories": False,
        "fields": {
            "title": ["NAME"],
            "sku": ["CODE"],
            "supplier_sku": ["ID", "CODE"],
            "description": ["PREVIEW_TEXT", "DETAIL_TEXT"],
            "price": ["BASE_PRICE"],
        },
        "category_fields": [
            "SECTIONS.SECTION_1",
            "SECTIONS.SECTION_2",
            "SECTIONS.SECTION_3",
        ],
        "image_fields": [
            "PREVIEW_PICTURE",
            "DETAIL_PICTURE",
            "PROPERTIES.MORE_PHOTO",
        ],
        "properties": {},
        "dynamic_properties": {
            "source": "PROPERTIES",
            "numeric": [
                "POWER_CONS_COOL", "POWER_CONS_HEAT", "COEF_EER", "COEF_COP",
                "SEER", "SCOP", "CURRENT_MAX", "NOISE_PRESS_COOL",
                "NOISE_PRESS_HEAT", "WEIGHT", "PIPE_MAX_LENGTH",
                "PIPE_SUM_LENGTH", "PIPE_MAX_TO_FIRST_INDOOR",
            ],
            "exclude": ["MORE_PHOTO"],
        },
        "defaults": {"brand": "Mitsubishi Heavy Industries"},
    },
}


def get_supplier_spec(code: str) -> Optional[SupplierSpec]:
    """Get the feed configuration for a supplier code."""
    return SUPPLIER_SPECS.get(code)


def get_feed_urls(code: str) -> List[str]:
    """Read the feed URL(s) for a supplier from the environment.

    Raises:
        ConfigurationError: If the supplier is unknown or its variable is empty.
    """
    spec = get_supplier_spec(code)
    if spec is None:
        raise ConfigurationError(f"Unknown supplier: {code}")

    env_name = spec["feed_env"]
    raw = os.getenv(env_name, "")
    urls = [u.strip() for u in raw.split(",") if u.strip()]
    if not urls:
        raise ConfigurationError(f"{env_name} is not set")
    return urls
