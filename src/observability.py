"""Observability: in-process counters and timers for the feedback loop."""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Dict-based collector. Counters are ints, timers keep every duration in seconds."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Record how long the block took, even if it raised."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.perf_counter() - start)

    def summary(self) -> dict[str, Any]:
        timers = {}
        for name, durations in self._timers.items():
            timers[name] = {
                "count": len(durations),
                "total": round(sum(durations), 4),
                "max": round(max(durations), 4),
            }
        return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        self._counters.clear()
        self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log the collected counters and timers, if anything was recorded."""
    summary = metrics.summary()
    if summary["counters"] or summary["timers"]:
        logger.info("feedback.run_summary", **summary)
