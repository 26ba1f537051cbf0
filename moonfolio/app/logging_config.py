"""
Logging configuration for the Moonfolio service.

Uses structlog on top of the stdlib logging module:
- every event rendered as one JSON line (timestamp, level, logger, event, fields)
- console output always on
- optional file output under ./logs, rotated daily, gzip-compressed, 30 days kept
"""
import gzip
import logging
import logging.handlers
import shutil
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict

LOG_FILE_NAME = "moonfolio.log"
LOG_RETENTION_DAYS = 30


def get_log_directory(base_dir: Optional[Path] = None) -> Path:
    """Get or create the log directory."""
    log_dir = (base_dir or Path(__file__).parent.parent.parent) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Store the upper-cased method name as ``level``."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def _gzip_namer(default_name: str) -> str:
    return default_name + ".gz"


def _gzip_rotator(source: str, dest: str) -> None:
    """Compress a rotated log file and remove the plain copy."""
    with open(source, 'rb') as f_in, gzip.open(dest, 'wb') as f_out:
        shutil.copyfileobj(f_in, f_out)
    Path(source).unlink()


def _build_file_handler(level: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(get_log_directory() / LOG_FILE_NAME),
        when="midnight",
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
        utc=True,
        )
    handler.setLevel(level)
    handler.rotator = _gzip_rotator
    handler.namer = _gzip_namer
    return handler


def configure_logging(log_level: str = "INFO", enable_file_logging: bool = True) -> None:
    """
    Configure structured logging for the application.

    Safe to call more than once (tests rebuild the app): existing root
    handlers are replaced.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_file_logging: Whether to also write to the rotating log file
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    handlers: list[logging.Handler] = [console_handler]
    if enable_file_logging:
        handlers.append(_build_file_handler(numeric_level))

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=numeric_level,
        force=True
        )

    # Uvicorn access lines are noise next to the structured request logs
    logging.getLogger("uvicorn.access").setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(default=str),
            ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance (structured logger).

    Usage:
        logger = get_logger(__name__)
        logger.info("Asset created", asset_id=3, symbol="ETH")
    """
    return structlog.get_logger(name)
