from __future__ import annotations

import threading
from typing import Any, Dict


class SearchMetrics:
    """Process-local search counters exposed on /metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.searches = 0
        self.errors = 0
        self.weather_filtered = 0
        self.total_time_ms = 0.0

    def record_search(self, elapsed_ms: float, *, weather_filtered: bool = False) -> None:
        with self._lock:
            self.searches += 1
            self.total_time_ms += float(elapsed_ms)
            if weather_filtered:
                self.weather_filtered += 1

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def reset(self) -> None:
        with self._lock:
            self.searches = 0
            self.errors = 0
            self.weather_filtered = 0
            self.total_time_ms = 0.0

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            avg = self.total_time_ms / self.searches if self.searches else 0.0
            return {
                "searches": self.searches,
                "errors": self.errors,
                "avgSearchTimeMs": round(avg, 3),
                "weatherFilteredSearches": self.weather_filtered,
            }
