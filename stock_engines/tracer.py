"""
``@traced_engine``: one STOCK_ENGINE_TRACE log record per successful
engine call.

The record names the engine and its version, carries a 16-hex-char
SHA-256 fingerprint of the chosen inputs, and the call duration.  Inputs
are bound to parameter names first, so ``calculate_wac(100, ...)`` and
``calculate_wac(current_quantity=100, ...)`` hash the same.  A call that
raises leaves no record.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from stock_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "STOCK_ENGINE_TRACE"


def _stable_text(value: Any) -> str:
    # Decimal("10.0") and Decimal("10") must hash alike
    if value is None:
        return "null"
    if isinstance(value, Decimal) and value.is_finite():
        return str(value.normalize())
    if isinstance(value, Mapping):
        body = ",".join(
            f"{key}:{_stable_text(value[key])}" for key in sorted(value, key=str)
        )
        return "{" + body + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(map(_stable_text, value)) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    canonical = "|".join(
        f"{name}={_stable_text(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Args:
        engine_name: e.g. "wac".
        engine_version: e.g. "1.0".
        fingerprint_fields: parameter names that go into the input hash.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        def fingerprint(args: tuple, kwargs: dict) -> str:
            if not fingerprint_fields:
                return ""
            try:
                arguments = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                # the call itself will fail with the same TypeError
                arguments = kwargs
            return compute_input_fingerprint(fingerprint_fields, arguments)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            input_fingerprint = fingerprint(args, kwargs)
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed = time.perf_counter() - started

            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": input_fingerprint,
                    "duration_ms": round(elapsed * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
