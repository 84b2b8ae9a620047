"""
dairy_engines.tracer -- Engine invocation tracer emitting DAIRY_ENGINE_TRACE.

Responsibility:
    Decorator (``@traced_engine``) wrapping pure engine entry points.  Each
    call produces one DEBUG trace line carrying the engine name and version,
    a fingerprint of the selected arguments, a short summary of the result
    and the duration.  Two calls with the same fingerprint are replays of
    the same calculation and must produce the same summary.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.  Emits
    a log record only; arguments and results are never mutated.

Failure modes:
    - Unknown fingerprint field names are a programming error and raise
      ValueError at decoration time.
    - A failing ``summarize`` callable is not caught; engines pass simple
      attribute readers.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("dairy_kernel.engines.tracer")


def canonical_form(value: Any) -> str:
    """Order-stable text form of an engine argument."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        # 100 and 100.000000000 (as read back from the database) are one input
        return format(value.normalize(), "f")
    if isinstance(value, dict):
        return "{" + ",".join(
            f"{k}:{canonical_form(v)}" for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))
        ) + "}"
    if isinstance(value, Iterable) and not isinstance(value, str):
        return "[" + ",".join(canonical_form(v) for v in value) + "]"
    return str(value)


def fingerprint(arguments: dict[str, Any], fields: tuple[str, ...]) -> str:
    """16-hex-char SHA-256 prefix over ``fields`` of the bound arguments."""
    text = "|".join(f"{name}={canonical_form(arguments.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable:
    """
    Decorator emitting DAIRY_ENGINE_TRACE after each engine call.

    ``fingerprint_fields`` name parameters of the decorated function,
    positional or keyword.  ``summarize`` turns the result into a few
    loggable fields.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        unknown = set(fingerprint_fields) - set(signature.parameters)
        if unknown:
            raise ValueError(
                f"{func.__qualname__} has no parameter(s) {', '.join(sorted(unknown))}"
            )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _logger.isEnabledFor(logging.DEBUG):
                return func(*args, **kwargs)

            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            # iterators would be exhausted by fingerprinting
            arguments = {
                name: list(value) if isinstance(value, Iterator) else value
                for name, value in bound.arguments.items()
            }
            input_fingerprint = fingerprint(arguments, fingerprint_fields) if fingerprint_fields else ""

            started = time.monotonic()
            result = func(**arguments)
            duration_ms = round((time.monotonic() - started) * 1000, 2)

            _logger.debug(
                "DAIRY_ENGINE_TRACE",
                extra={
                    "trace_type": "DAIRY_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": input_fingerprint,
                    "result_summary": summarize(result) if summarize else {},
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
