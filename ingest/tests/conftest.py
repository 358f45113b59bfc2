"""Shared fixtures for the importer test suite."""

import json
from pathlib import Path
from typing import Dict, List

import pytest

from ingest.db import Storage, open_storage
from ingest.errors import TransportError
from ingest.upsert import ensure_suppliers


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "catalog.db")


@pytest.fixture
def storage(db_path):
    """Migrated, empty database."""
    with open_storage(db_path) as st:
        yield st


@pytest.fixture
def seeded(storage: Storage) -> Storage:
    """Migrated database with every registered supplier."""
    ensure_suppliers(storage)
    return storage


@pytest.fixture
def supplier_id(seeded: Storage) -> int:
    return seeded.scalar("SELECT id FROM supplier WHERE code = 'euroklimate'")


class FakeFetch:
    """Stands in for ingest.http.fetch_feed; maps URL -> body or exception."""

    def __init__(self, responses: Dict[str, object]):
        self.responses = responses
        self.calls: List[str] = []

    def __call__(self, url: str, timeout: float = 60) -> bytes:
        self.calls.append(url)
        body = self.responses[url]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, (list, dict)):
            return json.dumps(body, ensure_ascii=False).encode("utf-8")
        if isinstance(body, str):
            return body.encode("utf-8")
        return body


@pytest.fixture
def fake_fetch():
    return FakeFetch


@pytest.fixture
def failing_fetch():
    def _fetch(url: str, timeout: float = 60) -> bytes:
        raise TransportError(f"HTTP 503 for {url}", url=url, status_code=503)
    return _fetch


@pytest.fixture
def row_count():
    """Row count of a table: row_count(storage, "product")."""
    def _count(storage: Storage, table: str) -> int:
        return storage.scalar(f"SELECT COUNT(*) FROM {table}")
    return _count
