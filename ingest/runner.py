"""Batch orchestration: one supplier, or every registered supplier in turn."""

from datetime import datetime, timezone
from typing import List, Optional

from ingest.adapters import ADAPTERS, get_adapter_class
from ingest.adapters.base import FetchFunc
from ingest.db import Storage
from ingest.http import fetch_feed
from ingest.logging_config import get_logger
from ingest.models import RunResult

__all__ = [
    "make_batch_id",
    "run_supplier",
    "run_all",
]

logger = get_logger("runner")


def make_batch_id(started_at: Optional[datetime] = None, code: Optional[str] = None) -> str:
    """ISO-8601 UTC timestamp of the invocation, suffixed with the supplier code."""
    started_at = started_at or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    stamp = started_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"{stamp}_{code}" if code else stamp


def run_supplier(
    storage: Storage,
    code: str,
    batch_id: Optional[str] = None,
    fetch: Optional[FetchFunc] = None,
) -> RunResult:
    """Run one adapter. Errors propagate after the adapter has logged them."""
    adapter_class = get_adapter_class(code)
    batch_id = batch_id or make_batch_id()
    adapter = adapter_class(storage, fetch=fetch or fetch_feed)
    count = adapter.run(batch_id)
    logger.info(f"Done: {code} ({count} records, batch {batch_id})")
    return RunResult(code=code, batch_id=batch_id, status="ok", count=count)


def run_all(
    storage: Storage,
    started_at: Optional[datetime] = None,
    fetch: Optional[FetchFunc] = None,
) -> List[RunResult]:
    """Run every registered adapter sequentially.

    A supplier that fails is recorded and the next one still runs.
    """
    started_at = started_at or datetime.now(timezone.utc)
    results: List[RunResult] = []

    for code in ADAPTERS:
        batch_id = make_batch_id(started_at, code)
        try:
            results.append(run_supplier(storage, code, batch_id, fetch=fetch))
        except Exception as e:
            logger.error(f"Failed: {code}: {e}")
            results.append(RunResult(code=code, batch_id=batch_id, status="error", error=str(e)))

    failed = [r.code for r in results if not r.ok]
    logger.info(f"Run-all finished: {len(results) - len(failed)} ok, {len(failed)} failed"
                + (f" ({', '.join(failed)})" if failed else ""))
    return results
