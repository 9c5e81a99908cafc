"""
estate_engines.tracer -- ``@traced_engine`` decorator.

Wraps a pure calculator so each call emits one ``engine_trace`` debug
record with the engine name, version, a short fingerprint of selected
keyword arguments, and the duration.  The wrapped function's inputs and
result are untouched.

Usage:
    @traced_engine("installment_schedule", "1.0", fingerprint_fields=("total", "count"))
    def generate_schedule(*, total, count, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

from estate_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, Decimal, str)):
        return str(value)
    if isinstance(value, dict):
        return "{" + ",".join(f"{k}:{_canonical(v)}" for k, v in sorted(value.items())) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    return str(value)


def fingerprint(fields: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """16-hex-char SHA-256 prefix over the named keyword arguments."""
    canonical = "|".join(f"{name}={_canonical(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            _logger.debug(
                "engine_trace",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else "",
                    "duration_ms": round((time.monotonic() - started) * 1000, 3),
                },
            )
            return result

        wrapper.engine_name = engine_name  # type: ignore[attr-defined]
        wrapper.engine_version = engine_version  # type: ignore[attr-defined]
        return wrapper

    return decorator
