"""Registry-driven extraction of canonical fields from supplier records.

The per-supplier rules live in ``SUPPLIER_SPECS`` (config.py); this module
only knows how to apply them to a parsed record.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from ingest.feeds import as_list
from ingest.normalize import to_bool, to_decimal, to_int, to_str, to_text

__all__ = [
    "COERCERS",
    "coerce",
    "text_of",
    "pick_field",
    "pick_first",
    "collect_values",
    "map_properties",
    "map_dynamic_properties",
]

COERCERS: Dict[str, Callable[[Any], Any]] = {
    "str": to_str,
    "text": to_text,
    "decimal": to_decimal,
    "int": to_int,
    "bool": to_bool,
}


def coerce(kind: str, value: Any) -> Any:
    """Apply a named coercion ("str", "text", "decimal", "int", "bool")."""
    try:
        func = COERCERS[kind]
    except KeyError:
        raise ValueError(f"Unknown coercion kind: {kind}. Must be one of {sorted(COERCERS)}") from None
    return func(value)


def text_of(value: Any) -> Any:
    """Text content of a parsed XML element that also carried attributes."""
    if isinstance(value, dict):
        return value.get("#text")
    return value


def pick_field(record: Any, path: str) -> Any:
    """Value at a dotted path ("SECTIONS.SECTION_1"); None when any step is missing."""
    current = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def pick_first(record: Any, paths: Iterable[str]) -> Any:
    """First non-empty value among candidate paths (element text for XML nodes)."""
    for path in paths:
        value = text_of(pick_field(record, path))
        if not _is_empty(value):
            return value
    return None


def collect_values(record: Any, paths: Iterable[str]) -> List[str]:
    """Non-empty string values at each path, in order, lists flattened, duplicates dropped."""
    values: List[str] = []
    seen = set()
    for path in paths:
        for item in as_list(pick_field(record, path)):
            text = to_str(text_of(item))
            if text is not None and text not in seen:
                seen.add(text)
                values.append(text)
    return values


def map_properties(spec: Dict[str, Any], record: Any) -> Dict[str, Any]:
    """Map a record through its supplier's named property rules.

    Returns property name -> coerced value, leaving out empty results.
    """
    result: Dict[str, Any] = {}
    for name, (path, kind) in (spec.get("properties") or {}).items():
        value = coerce(kind, text_of(pick_field(record, path)))
        if value is not None and value != "":
            result[name] = value
    return result


def map_dynamic_properties(spec: Dict[str, Any], record: Any) -> Dict[str, Any]:
    """Map every key of an open property bag (e.g. PROPERTIES).

    Keys listed as numeric are parsed as decimals, the rest kept as text.
    """
    config: Optional[Dict[str, Any]] = spec.get("dynamic_properties")
    if not config:
        return {}
    bag = pick_field(record, config["source"])
    if not isinstance(bag, dict):
        return {}

    numeric = set(config.get("numeric", ()))
    exclude = set(config.get("exclude", ()))
    result: Dict[str, Any] = {}
    for key, raw in bag.items():
        if key in exclude or _is_empty(raw):
            continue
        if isinstance(raw, list):
            raw = ", ".join(t for t in (to_str(item) for item in raw) if t)
        value = to_decimal(raw) if key in numeric else to_str(raw)
        if value is not None and value != "":
            result[key] = value
    return result
