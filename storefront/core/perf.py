"""Lightweight query timing: records per-query durations and flags slow ones."""
import functools
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from storefront.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class QueryMetric:
    query_name: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    data_size: Optional[int] = None


@dataclass
class _Measurement:
    """Handle yielded by PerformanceMonitor.measure; set data_size before exit."""
    data_size: Optional[int] = None


def is_query_slow(duration_ms: float, threshold_ms: float | None = None) -> bool:
    threshold = settings.SLOW_QUERY_MS if threshold_ms is None else threshold_ms
    return duration_ms > threshold


def _payload_size(result: Any) -> int | None:
    try:
        return len(json.dumps(result, default=str))
    except (TypeError, ValueError):
        return None


class PerformanceMonitor:
    def __init__(
        self,
        enabled: bool | None = None,
        slow_ms: float | None = None,
        notice_ms: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.enabled = settings.PERF_MONITORING_ENABLED if enabled is None else enabled
        self.slow_ms = settings.SLOW_QUERY_MS if slow_ms is None else slow_ms
        self.notice_ms = settings.NOTICE_QUERY_MS if notice_ms is None else notice_ms
        self._clock = clock or (lambda: time.perf_counter() * 1000)
        self._metrics: list[QueryMetric] = []

    def start_query(self, query_name: str) -> str:
        if not self.enabled:
            return ""
        self._metrics.append(QueryMetric(query_name=query_name, start_time=self._clock()))
        return query_name

    def end_query(
        self,
        query_name: str,
        success: bool = True,
        error: str | None = None,
        data_size: int | None = None,
    ) -> None:
        if not self.enabled:
            return
        metric = next(
            (m for m in self._metrics if m.query_name == query_name and m.end_time is None),
            None,
        )
        if metric is None:
            return

        metric.end_time = self._clock()
        metric.duration = metric.end_time - metric.start_time
        metric.success = success
        metric.error = error
        metric.data_size = data_size

        if metric.duration > self.slow_ms:
            logger.warning(f"Slow query detected: {query_name} took {metric.duration:.2f}ms")
        elif metric.duration > self.notice_ms:
            logger.info(f"Query: {query_name} took {metric.duration:.2f}ms")

    @contextmanager
    def measure(self, query_name: str):
        """Time the enclosed block. Exceptions are recorded and re-raised."""
        handle = _Measurement()
        started = self.start_query(query_name)
        try:
            yield handle
        except Exception as e:
            self.end_query(started, success=False, error=str(e) or type(e).__name__)
            raise
        self.end_query(started, success=True, data_size=handle.data_size)

    def monitored(self, query_name: str):
        """Decorator for async callables; records duration and result size."""
        def decorator(fn: Callable[..., Awaitable[Any]]):
            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                with self.measure(query_name) as m:
                    result = await fn(*args, **kwargs)
                    m.data_size = _payload_size(result)
                return result
            return wrapper
        return decorator

    def get_metrics(self) -> list[QueryMetric]:
        return list(self._metrics)

    def get_average_query_time(self, query_name: str | None = None) -> float:
        relevant = [m for m in self._metrics if query_name is None or m.query_name == query_name]
        if not relevant:
            return 0.0
        return sum(m.duration or 0.0 for m in relevant) / len(relevant)

    def clear_metrics(self) -> None:
        self._metrics = []

    def _query_breakdown(self) -> dict[str, dict]:
        breakdown: dict[str, dict] = {}
        for m in self._metrics:
            row = breakdown.setdefault(m.query_name, {"count": 0, "avg_time": 0.0, "total_time": 0.0})
            row["count"] += 1
            row["total_time"] += m.duration or 0.0
        for row in breakdown.values():
            row["avg_time"] = row["total_time"] / row["count"]
        return breakdown

    def generate_report(self) -> dict | None:
        if not self.enabled:
            return None
        return {
            "total_queries": len(self._metrics),
            "average_time": self.get_average_query_time(),
            "slow_queries": [m.query_name for m in self._metrics if (m.duration or 0.0) > self.slow_ms],
            "failed_queries": [m.query_name for m in self._metrics if m.end_time is not None and not m.success],
            "query_breakdown": self._query_breakdown(),
        }

    def recommendations(self) -> list[str]:
        tips = []
        finished = [m for m in self._metrics if m.end_time is not None]
        slow = [m for m in finished if (m.duration or 0.0) > self.slow_ms]
        failed = [m for m in finished if not m.success]

        if slow:
            tips.append(f"Consider optimizing {len(slow)} slow queries")
        if failed:
            tips.append(f"Fix {len(failed)} failed queries")
        if finished and self.get_average_query_time() > self.notice_ms:
            tips.append("Consider implementing caching to reduce average query time")
        return tips
