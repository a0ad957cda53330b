"""
Structured JSON logging for the ingestion engine.

Every record under the ``crm_ingestion`` logger is written as one JSON
object per line. Run-scoped fields (which transform run, which mapping,
which workbook) live in ``LogContext`` and are merged into each line, so
the engine and readers only pass event-specific values through ``extra``.

Usage:
    configure_logging(level="DEBUG")
    logger = get_logger("services.transformation_engine")
    with LogContext.bind(correlation_id=run_id, mapping_name="accounts"):
        logger.info("transform_started", extra={"rows": 120})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from typing import Any, TextIO

ROOT_LOGGER_NAME = "crm_ingestion"

_RUN_FIELDS = ("correlation_id", "mapping_name", "source_name")

_run_context: ContextVar[dict[str, str]] = ContextVar("crm_ingestion_run_context", default={})


def _checked(fields: dict[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - set(_RUN_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
    return {k: v for k, v in fields.items() if v is not None}


class _Binding:
    """Restores the previous run context when the ``with`` block exits."""

    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._token: Token | None = None

    def __enter__(self) -> type["LogContext"]:
        self._token = _run_context.set({**_run_context.get(), **self._fields})
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _run_context.reset(self._token)
            self._token = None


class LogContext:
    """
    Run-scoped fields attached to every log line.

    Backed by a single ContextVar, so concurrent transform runs in
    different threads or tasks never see each other's fields. ``None``
    values are ignored by both ``set`` and ``bind``.
    """

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        mapping_name: str | None = None,
        source_name: str | None = None,
    ) -> None:
        update = _checked(
            {"correlation_id": correlation_id, "mapping_name": mapping_name, "source_name": source_name}
        )
        if update:
            _run_context.set({**_run_context.get(), **update})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_run_context.get())

    @staticmethod
    def clear() -> None:
        _run_context.set({})

    @staticmethod
    def bind(**fields: str | None) -> _Binding:
        """Set fields for the duration of a ``with`` block."""
        return _Binding(_checked(fields))


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_BUILTINS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    # Decimal, UUID, Path and the rest: their text form.
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception into ``exc_*`` keys, including ingestion error context."""
    fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = list(value) if isinstance(value, tuple) else value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, run context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_BUILTINS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_json_default, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    """Return ``crm_ingestion.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``crm_ingestion`` logger.

    ``level`` may be a number or a level name such as ``"debug"``. Only the
    first call has an effect until ``reset_logging`` runs. Records do not
    propagate to the root logger, so host applications keep their own output.
    """
    global _installed_handler
    numeric_level = _resolve_level(level)
    with _setup_lock:
        if _installed_handler is not None:
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.setLevel(numeric_level)
        package_logger.addHandler(target)
        package_logger.propagate = False
        _installed_handler = target


def reset_logging() -> None:
    """Undo ``configure_logging``. Used between tests."""
    global _installed_handler
    with _setup_lock:
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        for existing in list(package_logger.handlers):
            package_logger.removeHandler(existing)
        package_logger.setLevel(logging.NOTSET)
        package_logger.propagate = True
        _installed_handler = None
