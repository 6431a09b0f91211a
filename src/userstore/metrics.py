"""Simple metrics and telemetry for userstore.

This module provides:
- Store operation timing
- Failure counters for operations whose errors are not propagated
  (archive ingestion is fire-and-forget)
- Simple in-memory metrics that can be dumped by the CLI

Metrics are designed to be lightweight and not require external dependencies.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import wraps
from threading import Lock
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

# Type variable for generic function decoration
F = TypeVar("F", bound=Callable[..., Any])

# Operations slower than this are logged
SLOW_OPERATION_MS = 100


@dataclass
class TimingStats:
    """Statistics for a timed operation."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    def record(self, duration_ms: float) -> None:
        """Record a timing measurement."""
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    @property
    def avg_ms(self) -> float:
        """Average duration in milliseconds."""
        return self.total_ms / self.count if self.count > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "count": self.count,
            "total_ms": round(self.total_ms, 2),
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.count > 0 else 0,
            "max_ms": round(self.max_ms, 2),
        }


@dataclass
class Metrics:
    """Global metrics collector."""

    _lock: Lock = field(default_factory=Lock)
    operations: dict[str, TimingStats] = field(default_factory=lambda: defaultdict(TimingStats))
    failures: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _start_time: float = field(default_factory=time.time)

    def record_operation(self, operation: str, duration_ms: float) -> None:
        """Record a store operation timing."""
        with self._lock:
            self.operations[operation].record(duration_ms)

    def record_failure(self, operation: str) -> None:
        """Record a failure that was handled without raising."""
        with self._lock:
            self.failures[operation] += 1

    def to_dict(self) -> dict:
        """Export metrics as a dictionary."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._start_time, 1),
                "operations": {k: v.to_dict() for k, v in self.operations.items()},
                "failures": dict(self.failures),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self.operations.clear()
            self.failures.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = Metrics()


def _record(operation: str, start: float) -> None:
    duration_ms = (time.perf_counter() - start) * 1000
    metrics.record_operation(operation, duration_ms)
    if duration_ms > SLOW_OPERATION_MS:
        logger.warning(f"Slow store operation: {operation} took {duration_ms:.1f}ms")


@contextmanager
def timed_store_operation(operation: str):
    """Context manager to time a store operation.

    Usage:
        with timed_store_operation("count_collections"):
            cursor = conn.execute(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        _record(operation, start)


def timed_operation(operation_name: str) -> Callable[[F], F]:
    """Decorator to time a function and record it as a store operation.

    Usage:
        @timed_operation("get_data")
        def get_data(conn, uid, path, key) -> str | None:
            ...
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _record(operation_name, start)

        return wrapper  # type: ignore

    return decorator
