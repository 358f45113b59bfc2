"""Euroklimat YML (XML shop catalog) feed."""

from typing import Any, Dict, List

from ingest.adapters.base import FeedAdapter
from ingest.feeds import YmlCatalog, as_list, parse_yml_catalog
from ingest.mapping import pick_field, text_of
from ingest.normalize import to_str

__all__ = ["EuroklimateAdapter"]


class EuroklimateAdapter(FeedAdapter):
    """Offers reference categories by id; params and documents become properties."""

    code = "euroklimate"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.catalog = YmlCatalog()

    def parse(self, body: bytes) -> List[Any]:
        catalog = parse_yml_catalog(body)
        self.catalog.categories.update(catalog.categories)
        return catalog.offers

    def category_path(self, record: Any) -> List[str]:
        return self.catalog.category_path(to_str(text_of(record.get("categoryId"))))

    def extra_properties(self, record: Any) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}

        # <param name="Мощность" unit="кВт">2.5</param>
        for param in as_list(record.get("param")):
            if not isinstance(param, dict):
                continue
            name = to_str(param.get("@name"))
            value = to_str(param.get("#text"))
            if name is None or value is None:
                continue
            unit = to_str(param.get("@unit"))
            properties[name] = f"{value} {unit}" if unit else value

        # <document name="Инструкция">https://...</document>
        for i, doc in enumerate(as_list(record.get("document")), start=1):
            url = to_str(text_of(doc))
            if url is None:
                continue
            name = to_str(pick_field(doc, "@name")) or f"Документ {i}"
            properties[name] = url

        return properties
