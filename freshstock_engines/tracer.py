"""
freshstock_engines.tracer -- Timing trace for pure engine calls.

Responsibility:
    ``@traced_engine`` times one engine invocation and emits a single
    FRESHSTOCK_ENGINE_TRACE record carrying the engine name and version,
    the duration and a few selected keyword inputs.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; inputs are read, never changed.

Usage:
    @traced_engine("fifo", "1.0", log_fields=("requested_quantity", "cap"))
    def allocate(*, batches, requested_quantity, cap=None):
        ...

    Collections are logged by size (``input_batches=12``), everything else
    by value.  Missing kwargs are logged as None.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Collection
from typing import Any

from freshstock_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")


def _loggable(value: Any) -> Any:
    if isinstance(value, Collection) and not isinstance(value, (str, bytes)):
        return len(value)
    return value


def traced_engine(
    engine_name: str,
    engine_version: str,
    log_fields: tuple[str, ...] = (),
) -> Callable:
    """Wrap an engine function so each call emits FRESHSTOCK_ENGINE_TRACE."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - started) * 1000, 2)

            extra = {
                "trace_type": "FRESHSTOCK_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "duration_ms": duration_ms,
                "function": func.__qualname__,
            }
            for name in log_fields:
                extra[f"input_{name}"] = _loggable(kwargs.get(name))
            logger.info("FRESHSTOCK_ENGINE_TRACE", extra=extra)
            return result

        return wrapper

    return decorator
