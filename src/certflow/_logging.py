"""Logging helpers shared by the certflow modules."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Silent unless the application configures handlers
_root = logging.getLogger("certflow")
_root.addHandler(logging.NullHandler())

# Domain of the certificate flow running in the current task
_flow_domain: ContextVar[str | None] = ContextVar("certflow_domain", default=None)


@contextmanager
def domain_context(domain: str | None) -> Iterator[None]:
    """Tag log records emitted inside the block with ``domain``.

    The value is task-local: concurrent flows each see their own domain,
    and nested blocks restore the outer domain on exit.

    Usage:
        with domain_context("example.com"):
            logger.info("Order created", extra=log_extra(order_url=url))
    """
    token = _flow_domain.set(domain)
    try:
        yield
    finally:
        _flow_domain.reset(token)


def current_domain() -> str | None:
    """Domain of the flow running in this task, if any."""
    return _flow_domain.get()


def log_extra(**fields: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping for a log call.

    The current flow's domain is added unless ``fields`` already names one.
    """
    domain = _flow_domain.get()
    if domain is not None:
        fields.setdefault("domain", domain)
    return fields


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the certflow namespace.

    Args:
        name: The module name (typically __name__).
    """
    return logging.getLogger(name)


class Timer:
    """Wall-clock duration of a block, in milliseconds rounded to 0.1.

    Usage:
        with Timer() as t:
            response = await http.get(url)
        logger.debug("Fetched", extra=log_extra(url=url, elapsed_ms=t.elapsed_ms))
    """

    __slots__ = ("_start", "elapsed_ms")

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        self.elapsed_ms = round((time.perf_counter() - self._start) * 1000, 1)
