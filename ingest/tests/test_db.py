"""Tests for the storage handle."""

import sqlite3

import pytest

from ingest.db import Storage


class TestTransaction:
    """Multi-statement units of work on the autocommit connection."""

    @pytest.fixture
    def deferred_fk(self, storage):
        """Tables whose foreign key is only checked at COMMIT."""
        storage.execute("CREATE TABLE parent (id INTEGER PRIMARY KEY)")
        storage.execute("""
            CREATE TABLE child (
                parent_id INTEGER REFERENCES parent(id) DEFERRABLE INITIALLY DEFERRED
            )
        """)
        return storage

    def test_commits_on_success(self, deferred_fk):
        """Statements in the block are visible after it exits."""
        with deferred_fk.transaction() as cursor:
            cursor.execute("INSERT INTO parent (id) VALUES (1)")
        assert not deferred_fk.conn.in_transaction
        assert deferred_fk.scalar("SELECT COUNT(*) FROM parent") == 1

    def test_rolls_back_on_error(self, deferred_fk):
        """An exception in the block discards its statements."""
        with pytest.raises(RuntimeError):
            with deferred_fk.transaction() as cursor:
                cursor.execute("INSERT INTO parent (id) VALUES (1)")
                raise RuntimeError("boom")
        assert deferred_fk.scalar("SELECT COUNT(*) FROM parent") == 0

    def test_failed_commit_rolls_back(self, deferred_fk):
        """A COMMIT that fails leaves no transaction open behind it."""
        with pytest.raises(sqlite3.IntegrityError):
            with deferred_fk.transaction() as cursor:
                cursor.execute("INSERT INTO child (parent_id) VALUES (99)")

        assert not deferred_fk.conn.in_transaction
        assert deferred_fk.scalar("SELECT COUNT(*) FROM child") == 0

        deferred_fk.execute("INSERT INTO parent (id) VALUES (1)")
        assert not deferred_fk.conn.in_transaction

    def test_nested_block_joins_outer(self, deferred_fk):
        """An inner transaction() shares the outer one's fate."""
        with pytest.raises(RuntimeError):
            with deferred_fk.transaction():
                with deferred_fk.transaction() as inner:
                    inner.execute("INSERT INTO parent (id) VALUES (1)")
                raise RuntimeError("boom")
        assert deferred_fk.scalar("SELECT COUNT(*) FROM parent") == 0


class TestStorageHandle:

    def test_closed_storage_refuses_queries(self, db_path):
        """Using a storage handle after close is an error."""
        storage = Storage(db_path).open()
        storage.close()
        assert not storage.is_open
        with pytest.raises(RuntimeError, match="not open"):
            storage.execute("SELECT 1")

    def test_foreign_keys_enabled(self, storage):
        """Every connection enforces foreign keys."""
        assert storage.scalar("PRAGMA foreign_keys") == 1
