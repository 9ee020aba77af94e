"""Logging for crawl runs.

Operators watch a console stream; every record, including structured crawl
events, also lands in ``logs/crawl_YYYYMMDD.jsonl``.
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
    "log_scrape_event",
    "LOG_DIR",
    "LOGGER_NAME",
]

LOGGER_NAME = "partscrape"

LOG_DIR = Path(__file__).parent.parent / "logs"

# Attribute names carried on LogRecords by log_scrape_event
EVENT_ATTR = "event_type"
FIELDS_ATTR = "event_fields"

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


class JSONLFormatter(logging.Formatter):
    """One JSON object per record, with crawl event fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        event_type = getattr(record, EVENT_ATTR, None)
        if event_type:
            entry["event_type"] = event_type
            entry.update(getattr(record, FIELDS_ATTR, {}))
        if record.exc_info:
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class DailyJSONLHandler(logging.Handler):
    """Appends formatted records to the file for the record's date."""

    def __init__(self, log_dir: Path, prefix: str = "crawl"):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.setFormatter(JSONLFormatter())

    def path_for(self, record: logging.LogRecord) -> Path:
        day = datetime.fromtimestamp(record.created).strftime("%Y%m%d")
        return self.log_dir / f"{self.prefix}_{day}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            # emit() runs under the handler lock, so worker lines never interleave
            with open(self.path_for(record), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class ConsoleFormatter(logging.Formatter):
    """Short console lines; worker thread names are shown for crawl workers."""

    def __init__(self, use_color: bool):
        super().__init__("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if record.threadName.startswith("crawl-worker"):
            text = text.replace("] ", f"] ({record.threadName}) ", 1)
        color = _LEVEL_COLORS.get(record.levelno) if self.use_color else None
        if color:
            text = text.replace(record.levelname, f"{color}{record.levelname}{_RESET}", 1)
        return text


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the package logger, replacing handlers from an earlier call.

    Args:
        level: Console level; the JSONL file always records DEBUG and up
        log_to_file: Write the daily JSONL file
        log_to_console: Write to stdout
        log_dir: JSONL directory (default: LOG_DIR)
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if log_to_file else level)

    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
        logger.addHandler(console)

    if log_to_file:
        logger.addHandler(DailyJSONLHandler(log_dir or LOG_DIR))

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Logger for a module, e.g. get_logger("crawler") -> partscrape.crawler."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def log_scrape_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = LOGGER_NAME,
) -> None:
    """Emit a structured crawl event.

    ``data["message"]`` (default: the event type) is the log message; every
    other key becomes a top-level field of the JSONL entry.
    """
    fields = {k: v for k, v in data.items() if k != "message"}
    get_logger(logger_name).log(
        level,
        data.get("message", event_type),
        extra={EVENT_ATTR: event_type, FIELDS_ATTR: fields},
    )
