"""
Search performance monitoring.

Keeps a rolling window of recent searches for the stats endpoint.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List

logger = logging.getLogger("storefront.search")

MAX_RECORDED_SEARCHES = 100
SLOW_SEARCH_THRESHOLD_MS = 50.0


@dataclass(frozen=True)
class SearchMetric:
    query: str
    duration_ms: float
    result_count: int
    timestamp: float


class SearchPerformanceMonitor:
    def __init__(self, max_records: int = MAX_RECORDED_SEARCHES) -> None:
        self._metrics: Deque[SearchMetric] = deque(maxlen=max_records)

    def record_search(self, query: str, duration_ms: float, result_count: int) -> None:
        self._metrics.append(
            SearchMetric(
                query=query,
                duration_ms=duration_ms,
                result_count=result_count,
                timestamp=time.time(),
            )
        )

    def average_search_time(self) -> float:
        if not self._metrics:
            return 0.0
        return sum(m.duration_ms for m in self._metrics) / len(self._metrics)

    def slow_searches(self, threshold_ms: float = SLOW_SEARCH_THRESHOLD_MS) -> List[SearchMetric]:
        return [m for m in self._metrics if m.duration_ms > threshold_ms]

    def report(self, threshold_ms: float = SLOW_SEARCH_THRESHOLD_MS) -> Dict[str, Any]:
        slow = self.slow_searches(threshold_ms)
        report = {
            "total_searches": len(self._metrics),
            "average_ms": round(self.average_search_time(), 2),
            "slow_threshold_ms": threshold_ms,
            "slow_searches": [asdict(m) for m in slow],
        }

        if self._metrics:
            logger.info(
                "Search performance: avg=%.2fms total=%d slow=%d",
                report["average_ms"],
                report["total_searches"],
                len(slow),
            )

        return report

    def reset(self) -> None:
        self._metrics.clear()

    def __len__(self) -> int:
        return len(self._metrics)
