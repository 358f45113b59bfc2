"""Logging for import runs.

Operators read the colored stderr stream; the daily JSONL file under logs/
keeps structured run events (supplier, batch id, record counts, errors)
that can be joined against raw_import / import_log by batch id.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_import_event",
    "LOG_DIR",
    "PACKAGE_LOGGER",
]

PACKAGE_LOGGER = "ingest"

LOG_DIR = Path(__file__).parent.parent / "logs"


class JSONLFileHandler(logging.Handler):
    """Appends each record as one JSON line to ``<prefix>_YYYYMMDD.jsonl``."""

    def __init__(self, log_dir: Path, prefix: str = PACKAGE_LOGGER):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix

    def path_for(self, when: datetime) -> Path:
        return self.log_dir / f"{self.prefix}_{when:%Y%m%d}.jsonl"

    def to_entry(self, record: logging.LogRecord, when: datetime) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "timestamp": when.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type
        entry.update(getattr(record, "event_data", None) or {})
        if record.exc_info:
            entry["exception"] = logging.Formatter().formatException(record.exc_info)
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            now = datetime.now()
            line = json.dumps(self.to_entry(record, now), ensure_ascii=False, default=str)
            with open(self.path_for(now), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class ColoredConsoleHandler(logging.StreamHandler):
    """Stream handler that colors the level name on a TTY."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelno)
        if color and getattr(self.stream, "isatty", lambda: False)():
            text = text.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)
        return text


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Threshold for the console (the JSONL file always gets DEBUG)
        log_to_file: Write the daily JSONL file
        log_to_console: Write to stderr
        log_dir: Directory for the JSONL file (default: project logs/)

    Returns:
        The ``ingest`` logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    if log_to_console:
        console = ColoredConsoleHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
        logger.addHandler(console)

    if log_to_file:
        jsonl = JSONLFileHandler(log_dir or LOG_DIR)
        jsonl.setLevel(logging.DEBUG)
        logger.addHandler(jsonl)

    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """The package logger, or its child ``ingest.<name>``."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def log_import_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
) -> None:
    """Emit a structured run event.

    ``data["message"]`` (if any) is the human-readable text; every other
    key lands as a field of the JSONL entry.

    Event types: run_start, feed_fetched, run_complete, run_error.
    """
    fields = dict(data)
    message = fields.pop("message", event_type)
    get_logger(logger_name).log(
        level,
        message,
        extra={"event_type": event_type, "event_data": fields},
    )
