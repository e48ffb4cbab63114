"""
Structured logging for the vesting ledger.

Ledger modules log through ``logging.getLogger(__name__)`` with an
``extra={"event": ...}`` field. ``setup_logging`` attaches either a JSON
formatter (for aggregation) or a plain text formatter to the package logger.

Usage:
    from tokenvesting.core.logging_config import setup_logging

    logger = setup_logging(level="INFO", log_format="json")
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

from pythonjsonlogger import jsonlogger

from tokenvesting.core import config

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, environment, service and source location.
    """

    def __init__(
        self,
        fmt: str = "%(timestamp)s %(level)s %(name)s %(message)s",
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "tokenvesting",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name

        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


def setup_logging(
    name: str = "tokenvesting",
    log_file: Optional[str] = None,
    level: str = "INFO",
    log_format: str = "json",
    environment: str = "production",
    enable_console: bool = True,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        name: Logger name (the package root by default)
        log_file: Optional path for a rotating log file
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "text"
        environment: Environment identifier added to JSON records
        enable_console: Whether to log to stderr
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    if log_format == "json":
        formatter: logging.Formatter = CustomJsonFormatter(
            environment=environment,
            service_name=name.split(".")[0],
        )
    elif log_format == "text":
        formatter = logging.Formatter(TEXT_FORMAT)
    else:
        raise ValueError(f"Unknown log format: {log_format}")

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_env() -> logging.Logger:
    """
    Configure logging from TOKENVESTING_* environment settings.

    The settings are the module-level values in tokenvesting.core.config,
    read once when that module is imported; environment changes made after
    import are not picked up.
    """
    return setup_logging(
        log_file=config.LOG_FILE,
        level=config.LOG_LEVEL,
        log_format=config.LOG_FORMAT,
        environment=config.ENVIRONMENT,
    )
