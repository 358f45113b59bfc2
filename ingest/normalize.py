"""Scalar normalizers for raw feed values.

Supplier feeds carry locale-formatted numbers ("1 234,5"), bilingual
booleans ("да"/"yes") and legacy currency codes. Every function here is
total: bad input yields None (or the documented default), never an exception.
"""

import math
import re
from typing import Any, Iterable, List, Optional

from bs4 import BeautifulSoup

from ingest.config import DEFAULT_CURRENCY

__all__ = [
    "to_decimal",
    "to_int",
    "to_str",
    "to_text",
    "to_bool",
    "normalize_currency",
    "normalize_name",
    "category_path_key",
    "clean_path",
    "PATH_SEPARATOR",
]

TRUTHY = frozenset({"да", "yes", "true", "1"})
FALSY = frozenset({"нет", "no", "false", "0", ""})

# Joins normalized category segments into a map key
PATH_SEPARATOR = " || "

# Bound of SQLite's INTEGER storage class
INT64_LIMIT = 2 ** 63

_WHITESPACE_RE = re.compile(r"\s+")


def to_decimal(value: Any) -> Optional[float]:
    """Parse a possibly locale-formatted number ("1 234,56" -> 1234.56)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = _WHITESPACE_RE.sub("", str(value)).replace(",", ".", 1)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> Optional[int]:
    """Parse a whole count, truncating fractional input.

    Values outside SQLite's signed 64-bit INTEGER range give None.
    """
    number = to_decimal(value)
    if number is None or not -INT64_LIMIT <= number < INT64_LIMIT:
        return None
    return int(number)


def to_str(value: Any) -> Optional[str]:
    """Trimmed string, or None for absent/blank input."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_text(value: Any) -> Optional[str]:
    """Plain text from a value that may carry HTML markup (feed descriptions)."""
    text = to_str(value)
    if text is None:
        return None
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text or None


def to_bool(value: Any) -> Optional[bool]:
    """Map bilingual yes/no strings to bool; ambiguous input gives None, not False."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in TRUTHY:
        return True
    if text in FALSY:
        return False
    return None


def normalize_currency(value: Any) -> str:
    """Uppercase ISO code; legacy RUR becomes RUB, absent defaults to RUB."""
    code = to_str(value)
    if code is None:
        return DEFAULT_CURRENCY
    code = code.upper()
    return "RUB" if code == "RUR" else code


def normalize_name(value: Any) -> str:
    """Matching form of a category name: lowercase, single spaces, ё folded to е."""
    text = _WHITESPACE_RE.sub(" ", str(value or "")).strip().lower()
    return text.replace("ё", "е")


def clean_path(names: Optional[Iterable[Any]]) -> List[str]:
    """Trim category segments and drop the empty ones."""
    cleaned = []
    for name in names or []:
        text = to_str(name)
        if text is not None:
            cleaned.append(_WHITESPACE_RE.sub(" ", text))
    return cleaned


def category_path_key(names: Iterable[Any]) -> str:
    """Stable key for a raw category path, used by the per-supplier map."""
    return PATH_SEPARATOR.join(normalize_name(n) for n in clean_path(names))
