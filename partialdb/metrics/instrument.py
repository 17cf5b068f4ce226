from __future__ import annotations

import functools
import time
from typing import Any, Callable, TypeVar

from .registry import OPERATION_ERRORS_TOTAL, OPERATION_HITS_TOTAL, OPERATION_LATENCY_SECONDS

F = TypeVar("F", bound=Callable[..., Any])


def instrumented(method: str) -> Callable[[F], F]:
    """
    Record hits, latency and errors for every call of the wrapped function.

    Exceptions are counted and re-raised unchanged.
    """
    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                return fn(*args, **kwargs)
            except Exception:
                OPERATION_ERRORS_TOTAL.labels(method=method).inc()
                raise
            finally:
                OPERATION_HITS_TOTAL.labels(method=method).inc()
                OPERATION_LATENCY_SECONDS.labels(method=method).observe(time.monotonic() - start)

        return wrapper  # type: ignore[return-value]

    return decorator
