"""Root logger setup for limiter, stream and worker events.

Every component logs a short event name (``limiter.admitted``,
``or_done.cancelled``) and puts the details in ``extra``. The JSON formatter
writes one object per line with those details merged in. Calls made on
behalf of one logical operation share an ``operation_id`` kept in a
contextvar, so a thread only needs to set it once.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from admission.core.config import LogSettings, settings

_operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)

# Standard LogRecord attributes; anything else on a record came from ``extra``.
_EXCLUDED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "stack",
}


def set_operation_id(operation_id: str | None) -> None:
    """Tag every later record logged from this context with ``operation_id``."""

    _operation_id_var.set(operation_id)


def get_operation_id() -> str | None:
    """Return the operation id tagged on this context, if any."""

    return _operation_id_var.get()


def clear_operation_id() -> None:
    """Stop tagging records from this context."""

    _operation_id_var.set(None)


def _record_extras(record: LogRecord) -> dict[str, Any]:
    """Collect the structured ``extra`` fields attached to a record."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _EXCLUDED_ATTRS and not key.startswith("_")
    }


def _utc_now_iso() -> str:
    """Current UTC time in ISO-8601 form."""

    return datetime.now(timezone.utc).isoformat()


class OperationIdFilter(logging.Filter):
    """Copy the context operation id onto records that do not carry one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "operation_id", None) is None:
            operation_id = get_operation_id()
            if operation_id:
                record.operation_id = operation_id
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: level, logger, thread, message and extras."""

    def __init__(self, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        record_data: dict[str, Any] = {
            "timestamp": _utc_now_iso(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        operation_id = getattr(record, "operation_id", None) or get_operation_id()
        if operation_id:
            record_data["operation_id"] = operation_id

        record_data.update(_record_extras(record))

        if record.exc_info:
            record_data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(record_data, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Pick stdout, a plain file, or a size-rotated file from ``log_settings``."""

    if log_settings.output.lower() == "file":
        file_path = Path(log_settings.file_path or "logs/admission.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Replace the root handlers with one built from ``log_settings``.

    Falls back to ``settings.log`` when no settings are passed. Any handlers
    already on the root logger are dropped.
    """

    cfg = log_settings or settings.log

    level = getattr(logging, cfg.level.upper(), logging.INFO)
    handler = _build_handler(cfg)
    handler.addFilter(OperationIdFilter())

    if cfg.format.lower() == "plain":
        formatter: logging.Formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(threadName)s %(name)s %(message)s"
        )
    else:
        formatter = JsonFormatter()

    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
