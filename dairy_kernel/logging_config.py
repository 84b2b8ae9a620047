"""
Structured JSON logging for the dairy ERP core.

Every module logs through ``get_logger("<layer>.<module>")`` under the
``dairy_kernel`` namespace with a snake_case event name as the message and
the business fields in ``extra``::

    logger.info("purchase_order_received", extra={"reference": ref, "status": "PARTIAL"})

``StructuredFormatter`` renders one JSON object per line: timestamp, level,
logger, message, the request-scoped ``LogContext`` fields (actor, entity,
idempotency key), the ``extra`` fields and, for a logged exception, its
type, message and traceback.  A logged ``DairyErpError`` also contributes
its code, category, field and structured attributes as ``exc_*`` keys.
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
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "actor_role",
    "entity_id",
    "idempotency_key",
    "trace_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("dairy_log_context", default=_EMPTY)


def _checked(fields: dict[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    return {name: str(value) for name, value in fields.items() if value is not None}


class LogContext:
    """
    Request-scoped log fields (actor, entity, idempotency key).

    Held in a single ContextVar as a read-only mapping, so each thread and
    each asyncio task sees its own copy.  None values are never stored.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge non-None fields into the current context."""
        _context.set(MappingProxyType({**_context.get(), **_checked(fields)}))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    def bind(**fields: Any) -> "_BoundContext":
        """Context manager: merge fields on entry, restore the previous context on exit."""
        return _BoundContext(_checked(fields))


class _BoundContext:

    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(MappingProxyType({**_context.get(), **self._fields}))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

# DairyErpError attributes already rendered through to_payload()
_PAYLOAD_ATTRS = frozenset({"args", "code", "user_message", "user_action", "field", "context"})


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(str(v) for v in obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    to_payload = getattr(exc, "to_payload", None)
    if callable(to_payload):
        payload = to_payload()
        fields["exc_code"] = payload["code"]
        fields["exc_category"] = payload["category"]
        if "field" in payload:
            fields["exc_field"] = payload["field"]
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in _PAYLOAD_ATTRS:
                fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "dairy_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the dairy_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``dairy_kernel`` logger.

    Only the first call has an effect.  Records do not propagate to the
    root logger, so host applications keep their own format.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the handlers installed by configure_logging (tests only)."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
