"""Utilities for timing fetches from key stores."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


fetch_trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("fetch_trace")


@contextmanager
def fetch_timer(kind: str, name: str) -> Generator[None, None, None]:
    """Log how long fetching a single vault object took.

    Nested timers (e.g. a resource cycle containing object fetches) are shown
    as a path so the debug log reads like a call tree.
    """
    stack = fetch_trace.get([])
    token = fetch_trace.set(stack + [f"{kind}/{name}"])
    label = " > ".join(stack + [f"{kind}/{name}"])
    start = perf_counter()
    _LOGGER.debug("[Fetch] > %s", label)
    try:
        yield
    finally:
        fetch_trace.reset(token)
        _LOGGER.debug("[Fetch] < %s (%0.3fs)", label, perf_counter() - start)
