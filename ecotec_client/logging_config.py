"""
Logging configuration for the data client.

Records are tagged with the request id and the active shop (tenant) id held
in context variables, so interleaved async loads for different shops can be
told apart. Modules pass structured data as ``extra={"extra_fields": {...}}``.
Tokens are never put into log records.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional
from uuid import uuid4

PACKAGE_LOGGER = "ecotec_client"

# Context variables propagate across awaits within one task
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
shop_id_context: ContextVar[Optional[str]] = ContextVar("shop_id", default=None)


def _context_fields() -> Dict[str, str]:
    fields = {}
    request_id = request_id_context.get()
    if request_id:
        fields["request_id"] = request_id
    shop_id = shop_id_context.get()
    if shop_id:
        fields["shop_id"] = shop_id
    return fields


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record, for log aggregation.

    Context ids and ``extra_fields`` are merged into the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            **_context_fields(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(getattr(record, "extra_fields", None) or {})

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colored single-line output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    TAGS = {"request_id": "req", "shop_id": "shop"}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        parts = [f"{color}{record.levelname:8}{self.COLORS['RESET']}", f"[{record.name}]"]

        for name, value in _context_fields().items():
            if name == "request_id":
                value = value[:8]
            parts.append(f"[{self.TAGS[name]}:{value}]")

        parts.append(record.getMessage())

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            parts.extend(f"{key}={value}" for key, value in extra_fields.items())

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(log_level: str = "INFO", use_json: bool = False) -> logging.Logger:
    """
    Attach a stdout handler to the ``ecotec_client`` logger tree.

    The host application's root logger is left alone; records from this
    package do not propagate to it once configured.

    Args:
        log_level: Logging level name
        use_json: Emit JSON instead of colored lines

    Returns:
        The package logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter_class = StructuredFormatter if use_json else HumanReadableFormatter

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_class(datefmt="%Y-%m-%d %H:%M:%S"))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return package_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for a module; pass ``__name__``."""
    return logging.getLogger(name or PACKAGE_LOGGER)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request id forwarded as ``X-Request-ID`` and shown in logs.

    Args:
        request_id: Id to use; a new UUID is generated when None

    Returns:
        The id that was set
    """
    if request_id is None:
        request_id = str(uuid4())
    request_id_context.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_context.get()


def clear_request_id() -> None:
    request_id_context.set(None)


def set_shop_id(shop_id: Optional[str]) -> None:
    """Tag subsequent log records in this context with a shop id."""
    shop_id_context.set(shop_id)
