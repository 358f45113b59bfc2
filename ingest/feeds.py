"""Feed body parsing: JSON arrays and YML ("Yandex Market Language") catalogs."""

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ingest.errors import FeedParseError
from ingest.normalize import to_str

__all__ = [
    "YmlCatalog",
    "parse_json_feed",
    "extract_items",
    "parse_yml_catalog",
    "element_to_dict",
    "as_list",
]


@dataclass
class YmlCatalog:
    """Categories and offers of one <yml_catalog><shop> document."""

    # Category id -> {"name": str, "parent_id": Optional[str]}
    categories: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)
    offers: List[Dict[str, Any]] = field(default_factory=list)

    def category_path(self, leaf_id: Optional[str]) -> List[str]:
        """Category names from the root down to ``leaf_id``."""
        path: List[str] = []
        seen = set()
        current = to_str(leaf_id)
        while current and current in self.categories and current not in seen:
            seen.add(current)
            node = self.categories[current]
            path.append(node["name"] or "")
            current = node["parent_id"]
        return list(reversed(path))


def as_list(value: Any) -> List[Any]:
    """Wrap a single parsed element in a list; None becomes []."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def extract_items(payload: Any) -> List[Any]:
    """Records of a JSON feed.

    Accepts a bare array, an object with an ``items`` array, or a single
    object (kept as one record so it lands in raw_import for inspection).
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return payload["items"]
    return [payload]


def parse_json_feed(body: bytes) -> List[Any]:
    """Parse a JSON feed body into its list of records."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise FeedParseError(f"Malformed JSON feed: {e}") from e
    return extract_items(payload)


def element_to_dict(elem: ET.Element) -> Any:
    """Convert an element to plain data.

    Attributes become ``@name`` keys, repeated children become lists and
    text next to attributes/children is kept under ``#text``. A leaf
    without attributes collapses to its text. Mixed content (markup inside
    a description) keeps its inner XML under ``#text`` so nothing after an
    inline tag is lost.
    """
    node: Dict[str, Any] = {f"@{k}": v for k, v in elem.attrib.items()}
    for child in elem:
        value = element_to_dict(child)
        if child.tag in node:
            existing = node[child.tag]
            if not isinstance(existing, list):
                node[child.tag] = [existing]
            node[child.tag].append(value)
        else:
            node[child.tag] = value

    if not node:
        return elem.text
    if _has_text(elem.text) or any(_has_text(child.tail) for child in elem):
        inner = "".join(ET.tostring(child, encoding="unicode") for child in elem)
        node["#text"] = (elem.text or "") + inner
    return node


def _has_text(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def parse_yml_catalog(body: bytes) -> YmlCatalog:
    """Parse a YML shop catalog into categories and offers."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise FeedParseError(f"Malformed XML feed: {e}") from e

    shop = root if root.tag == "shop" else root.find("shop")
    if shop is None:
        raise FeedParseError(f"Not a YML catalog: root element <{root.tag}> has no <shop>")

    catalog = YmlCatalog()
    for cat in shop.findall("categories/category"):
        cat_id = to_str(cat.get("id"))
        if cat_id is None:
            continue
        catalog.categories[cat_id] = {
            "name": to_str(cat.text) or "",
            "parent_id": to_str(cat.get("parentId")),
        }

    catalog.offers = [element_to_dict(offer) for offer in shop.findall("offers/offer")]
    return catalog
