"""
Simple in-memory metrics for Prometheus exposition.
Thread-safe counters.
"""
import threading
from typing import Dict

# name -> help text, in exposition order
COUNTERS = {
    "requests_total": "Total HTTP requests",
    "requests_2xx": "HTTP 2xx responses",
    "requests_4xx": "HTTP 4xx responses",
    "requests_5xx": "HTTP 5xx responses",
    "compile_requests_total": "Compile requests received",
    "local_build_success_total": "Builds completed by the local toolchain",
    "local_build_fallback_total": "Local build failures that fell back to remote dispatch",
    "dispatch_total": "Remote builds dispatched",
    "dispatch_error_total": "Remote dispatches rejected or unreachable",
    "integrity_error_total": "Successful runs with no matching artifact",
    "poll_timeout_total": "Polling loops that ran out of budget",
    "artifact_download_total": "Artifacts served",
    "progress_events_total": "Progress events published",
    "progress_events_dropped_total": "Progress events dropped for a full subscriber queue",
}


class Metrics:
    """Thread-safe metrics collection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = 0
            self._counters[name] += value

    def get(self, name: str) -> int:
        """Get a counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_all(self) -> Dict[str, int]:
        """Get all counter values."""
        with self._lock:
            return self._counters.copy()

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        counters = self.get_all()

        for name, value in counters.items():
            metric = f"agentify_{name}"
            lines.append(f"# HELP {metric} {COUNTERS.get(name, name)}")
            lines.append(f"# TYPE {metric} counter")
            lines.append(f"{metric} {value}")

        return "\n".join(lines) + "\n"


# Global metrics instance
metrics = Metrics()
