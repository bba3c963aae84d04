# =============================================================================
# sitesinc_core/logging/config.py
# Logging Configuration for the SiteSinc offline core
# =============================================================================

import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER = "sitesinc_core"
LOG_FILENAME = "sitesinc.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Libraries whose DEBUG chatter drowns out sync logs
NOISY_LOGGERS = ("urllib3", "requests")

_BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*")
_TOKEN_FIELD = re.compile(r"""((?:auth_token|token)['"]?\s*[:=]\s*['"]?)[^'",\s}]+""")


class TokenRedactionFilter(logging.Filter):
    """Masks bearer tokens before a record reaches any handler."""

    MASK = "***"

    def redact(self, text: str) -> str:
        text = _BEARER.sub(rf"\g<1>{self.MASK}", text)
        return _TOKEN_FIELD.sub(rf"\g<1>{self.MASK}", text)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = False,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
) -> None:
    """
    Configure application-wide logging.

    Console output always goes to stdout. With ``log_to_file`` a size-rotated
    file is written too, so a device that syncs for weeks keeps a bounded log.

    Args:
        level: Logging level (default: INFO)
        log_to_file: Whether to also log to a rotating file
        log_filename: Log file name (default: sitesinc.log)
        log_dir: Directory for log files (default: ./logs)
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files kept
    """
    redaction = TokenRedactionFilter()
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        directory = Path(log_dir) if log_dir else Path("logs")
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            directory / (log_filename or LOG_FILENAME),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.addFilter(redaction)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(PACKAGE_LOGGER).info(
        f"Logging initialized (level={logging.getLevelName(level)}, file={log_to_file})"
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; pass ``__name__``."""
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Usage:
        with LogContext(logger, "Downloading project 42", project_id=42) as ctx:
            engine.download_all_resources(42, token)
        ctx.elapsed   # seconds taken
        # Logs: "Downloading project 42... started"
        # Logs: "Downloading project 42... completed (2.34s)"

    Keyword arguments are attached to both records as ``extra`` fields.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO, **fields: Any):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.fields: Dict[str, Any] = fields
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "LogContext":
        self.start_time = time.monotonic()
        self.logger.log(self.level, f"{self.operation}... started", extra=self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.log(
                self.level,
                f"{self.operation}... completed ({self.elapsed:.2f}s)",
                extra=self.fields,
            )
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
                extra=self.fields,
            )

        return False
