"""Category path resolution.

Turns a supplier's raw category path (root -> leaf names) into category ids,
creating missing nodes. Two matching policies share one walk:

- ``exact``: a node matches on its stored name under the same parent.
- ``normalized``: a node matches on ``name_norm`` (case, whitespace and ё/е
  folded), so "Кондиционеры" and "кондиционеры" land on one node.

With ``memoize`` the resolver also keeps a per-supplier map from the raw
path key to the leaf id, so a feed that repeats its taxonomy on every run
skips the walk entirely.
"""

from typing import Any, Iterable, List, Optional

from ingest.db import Storage
from ingest.logging_config import get_logger
from ingest.normalize import category_path_key, clean_path, normalize_name

__all__ = [
    "CategoryResolver",
    "MATCH_POLICIES",
    "upsert_category_path",
    "get_or_create_category_by_supplier_path",
    "get_category_chain",
]

logger = get_logger("categories")

MATCH_POLICIES = ("exact", "normalized")


class CategoryResolver:
    """Resolve raw category paths to category ids with a configurable policy."""

    def __init__(self, storage: Storage, match: str = "exact", memoize: bool = False):
        if match not in MATCH_POLICIES:
            raise ValueError(f"Unknown category match policy: {match}. Must be one of {MATCH_POLICIES}")
        self.storage = storage
        self.match = match
        self.memoize = memoize

    def resolve(self, names: Optional[Iterable[Any]], supplier_id: Optional[int] = None) -> List[int]:
        """Return category ids for a path.

        A fresh walk returns the whole chain root -> leaf. A memoized hit
        returns only the leaf id. An empty path returns [].
        """
        path = clean_path(names)
        if not path:
            return []

        use_map = self.memoize and supplier_id is not None
        if use_map:
            key = category_path_key(path)
            cached = self._lookup_map(supplier_id, key)
            if cached is not None:
                return [cached]

        chain = self._walk(path)

        if use_map:
            self._remember(supplier_id, key, chain[-1])
        return chain

    def _walk(self, path: List[str]) -> List[int]:
        parent_id: Optional[int] = None
        chain: List[int] = []
        for name in path:
            node_id = self._find(name, parent_id)
            if node_id is None:
                node_id = self._create(name, parent_id)
            chain.append(node_id)
            parent_id = node_id
        return chain

    def _find(self, name: str, parent_id: Optional[int]) -> Optional[int]:
        if self.match == "exact":
            sql = "SELECT id FROM category WHERE name = ? AND parent_id IS ?"
            value = name
        else:
            sql = "SELECT id FROM category WHERE name_norm = ? AND parent_id IS ?"
            value = normalize_name(name)
        return self.storage.scalar(sql, (value, parent_id))

    def _create(self, name: str, parent_id: Optional[int]) -> int:
        """Insert-or-ignore a node, then select it by its sibling key.

        Siblings are unique by name_norm, so under the exact policy a name
        that only differs in case resolves to the node already stored.
        """
        name_norm = normalize_name(name)
        self.storage.execute(
            "INSERT OR IGNORE INTO category (name, name_norm, parent_id) VALUES (?, ?, ?)",
            (name, name_norm, parent_id),
        )
        node_id = self.storage.scalar(
            "SELECT id FROM category WHERE name_norm = ? AND parent_id IS ?",
            (name_norm, parent_id),
        )
        logger.debug(f"Category {name!r} (parent {parent_id}) -> {node_id}")
        return node_id

    def _lookup_map(self, supplier_id: int, key: str) -> Optional[int]:
        return self.storage.scalar(
            "SELECT category_id FROM supplier_category_map WHERE supplier_id = ? AND path_key = ?",
            (supplier_id, key),
        )

    def _remember(self, supplier_id: int, key: str, category_id: int) -> None:
        self.storage.execute("""
            INSERT INTO supplier_category_map (supplier_id, path_key, category_id)
            VALUES (?, ?, ?)
            ON CONFLICT(supplier_id, path_key) DO UPDATE SET
                category_id = excluded.category_id
        """, (supplier_id, key, category_id))


def upsert_category_path(storage: Storage, names: Iterable[Any]) -> List[int]:
    """Plain path upsert: exact name + parent matching, full chain returned."""
    return CategoryResolver(storage, match="exact").resolve(names)


def get_or_create_category_by_supplier_path(
    storage: Storage,
    supplier_id: int,
    names: Iterable[Any],
) -> List[int]:
    """Normalized path upsert memoized per supplier."""
    return CategoryResolver(storage, match="normalized", memoize=True).resolve(names, supplier_id)


def get_category_chain(storage: Storage, category_id: int) -> List[str]:
    """Names from the root down to ``category_id``."""
    names: List[str] = []
    current: Optional[int] = category_id
    seen = set()
    while current is not None and current not in seen:
        seen.add(current)
        row = storage.query_one("SELECT name, parent_id FROM category WHERE id = ?", (current,))
        if row is None:
            break
        names.append(row["name"])
        current = row["parent_id"]
    return list(reversed(names))
