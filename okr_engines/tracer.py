"""
okr_engines.tracer -- OKR_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps an engine function and, after it returns, logs
    one DEBUG record naming the engine and its version, a fingerprint of
    the chosen keyword inputs, and the wall time spent.

Architecture position:
    Engines -- support for the pure calculation layer.  Writes a log record
    and nothing else.

Invariants enforced:
    - The fingerprint is SHA-256 over canonical JSON: mapping keys sorted,
      sequence order kept, Decimal/UUID/Enum in their string form, dataclasses
      as their field mappings.
    - The wrapped function's result and exceptions pass through untouched;
      a raising engine emits no trace.

Audit relevance:
    Two captures with the same fingerprint were computed from the same
    inputs, so a disputed snapshot figure can be re-derived and compared.

Usage:
    @traced_engine("org_performance", "1.0", fingerprint_fields=("objectives",))
    def org_performance(*, objectives, grading_policy=None): ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

_logger = logging.getLogger("okr_kernel.engines.tracer")

TRACE_MESSAGE = "OKR_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16

F = TypeVar("F", bound=Callable[..., Any])


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(str(_plain(v)) for v in value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over the selected keyword arguments.

    An absent field hashes as null.
    """
    selected = {name: _plain(kwargs.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """Decorate a keyword-called engine so each call logs OKR_ENGINE_TRACE."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            if _logger.isEnabledFor(logging.DEBUG):
                _logger.debug(
                    TRACE_MESSAGE,
                    extra={
                        "trace_type": TRACE_MESSAGE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": (
                            compute_input_fingerprint(fingerprint_fields, kwargs)
                            if fingerprint_fields
                            else ""
                        ),
                        "duration_ms": elapsed_ms,
                        "function": func.__qualname__,
                    },
                )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
