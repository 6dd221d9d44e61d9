"""Simple in-memory metrics for pipeline runs.

These metrics are process-local and reset on restart.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Optional


@dataclass
class RunMetrics:
    """Metrics for a single poll or dispatch run."""

    job_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    processed: int = 0
    successful: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    details: dict = field(default_factory=dict)  # e.g. changes_detected, rate_limited


@dataclass
class MetricsStore:
    """Thread-safe store for pipeline run metrics."""

    _lock: Lock = field(default_factory=Lock)
    _last_runs: dict = field(default_factory=dict)  # job_name -> RunMetrics
    _total_runs: dict = field(default_factory=dict)  # job_name -> count
    _total_failures: dict = field(default_factory=dict)  # job_name -> count

    def record_run(
        self,
        job_name: str,
        started_at: datetime,
        processed: int,
        successful: int,
        failed: int,
        **details: int,
    ) -> None:
        """Record a completed run. Extra keyword counts are kept as details."""
        with self._lock:
            now = datetime.now(timezone.utc)
            self._last_runs[job_name] = RunMetrics(
                job_name=job_name,
                started_at=started_at,
                completed_at=now,
                processed=processed,
                successful=successful,
                failed=failed,
                duration_seconds=(now - started_at).total_seconds(),
                details=details,
            )
            self._total_runs[job_name] = self._total_runs.get(job_name, 0) + 1
            if failed > successful:
                self._total_failures[job_name] = self._total_failures.get(job_name, 0) + 1

    def get_last_run(self, job_name: str) -> Optional[RunMetrics]:
        with self._lock:
            return self._last_runs.get(job_name)

    def get_all_metrics(self) -> dict:
        with self._lock:
            result = {}
            for job_name, metrics in self._last_runs.items():
                result[job_name] = {
                    "last_run": {
                        "started_at": metrics.started_at.isoformat(),
                        "completed_at": metrics.completed_at.isoformat() if metrics.completed_at else None,
                        "processed": metrics.processed,
                        "successful": metrics.successful,
                        "failed": metrics.failed,
                        "duration_seconds": round(metrics.duration_seconds, 1),
                        **metrics.details,
                    },
                    "total_runs": self._total_runs.get(job_name, 0),
                    "total_failures": self._total_failures.get(job_name, 0),
                }
            return result

    def clear(self) -> None:
        with self._lock:
            self._last_runs.clear()
            self._total_runs.clear()
            self._total_failures.clear()


# Global metrics store
pipeline_metrics = MetricsStore()
