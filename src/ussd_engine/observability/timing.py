"""Context manager and helpers for latency instrumentation."""

from __future__ import annotations

import contextlib
import time
from collections.abc import Generator

from ussd_engine.observability.logging import get_logger

logger = get_logger(__name__)


@contextlib.contextmanager
def timed(component: str, warn_above_ms: float | None = None) -> Generator[None, None, None]:
    """Context manager to measure and log elapsed time per component.

    Usage:
        with timed("dispatch"):
            # do runtime work

    Logs structured entry with:
        - component: str (name of the measured component)
        - elapsed_ms: float (milliseconds elapsed)

    When ``warn_above_ms`` is given, entries slower than the threshold are
    logged as warnings ("slow_component") instead of info.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        extra = {
            "component": component,
            "elapsed_ms": round(elapsed_ms, 2),
        }
        if warn_above_ms is not None and elapsed_ms > warn_above_ms:
            logger.warning("slow_component", extra=extra)
        else:
            logger.info("component_latency", extra=extra)
