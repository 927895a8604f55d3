from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Mapping

logger = logging.getLogger(__name__)


class MetricRegistry:
    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._lock = Lock()

    def inc(self, name: str, labels: Mapping[str, str] | None = None, value: int = 1) -> None:
        key = self._format_key(name, labels)
        with self._lock:
            self._counters[key] += value

    def set(self, name: str, labels: Mapping[str, str] | None = None, value: float = 0.0) -> None:
        key = self._format_key(name, labels)
        with self._lock:
            self._gauges[key] = float(value)

    def snapshot(self) -> dict[str, float | int]:
        with self._lock:
            merged: dict[str, float | int] = dict(self._counters)
            merged.update(self._gauges)
            return merged

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()

    @staticmethod
    def _format_key(name: str, labels: Mapping[str, str] | None) -> str:
        if not labels:
            return name
        parts = [f"{k}={labels[k]}" for k in sorted(labels.keys())]
        return f"{name}{{{','.join(parts)}}}"


metrics = MetricRegistry()


@contextmanager
def instrument(name: str, message: str = "") -> Iterator[None]:
    """Time one logical operation, counting it and its failures under ``name``."""
    started = time.monotonic()
    outcome = "ok"
    try:
        yield
    except Exception:
        outcome = "error"
        raise
    finally:
        elapsed_ms = (time.monotonic() - started) * 1000
        metrics.inc(f"bulk_indexer_{name}_total", {"outcome": outcome})
        metrics.set(f"bulk_indexer_{name}_last_ms", value=elapsed_ms)
        logger.info("[%s] %s outcome=%s took=%.1fms", name, message, outcome, elapsed_ms)
