"""
Tests for pipeline run metrics.

Tests cover:
- RunMetrics defaults
- Recording runs
- Metrics retrieval
- Failure counting
"""

from datetime import datetime, timedelta, timezone

from app.core.metrics import MetricsStore, RunMetrics, pipeline_metrics


class TestRunMetrics:
    def test_run_metrics_defaults(self):
        """Test that RunMetrics has correct defaults."""
        metrics = RunMetrics(job_name="poll", started_at=datetime.now(timezone.utc))

        assert metrics.job_name == "poll"
        assert metrics.completed_at is None
        assert metrics.processed == 0
        assert metrics.successful == 0
        assert metrics.failed == 0
        assert metrics.duration_seconds == 0.0
        assert metrics.details == {}


class TestMetricsStoreRecordRun:
    def test_record_run_creates_entry(self):
        store = MetricsStore()
        started = datetime.now(timezone.utc) - timedelta(seconds=2)

        store.record_run("poll", started_at=started, processed=8, successful=7, failed=1)

        run = store.get_last_run("poll")
        assert run is not None
        assert run.processed == 8
        assert run.successful == 7
        assert run.failed == 1
        assert run.completed_at is not None
        assert run.duration_seconds >= 2

    def test_details_are_reported(self):
        """Extra counts passed to record_run appear in the last_run block."""
        store = MetricsStore()
        store.record_run(
            "send-emails",
            started_at=datetime.now(timezone.utc),
            processed=12,
            successful=10,
            failed=0,
            rate_limited=2,
        )

        assert store.get_last_run("send-emails").details == {"rate_limited": 2}
        assert store.get_all_metrics()["send-emails"]["last_run"]["rate_limited"] == 2

    def test_last_run_is_replaced(self):
        store = MetricsStore()
        now = datetime.now(timezone.utc)

        store.record_run("send-emails", started_at=now, processed=5, successful=5, failed=0)
        store.record_run("send-emails", started_at=now, processed=2, successful=1, failed=1)

        assert store.get_last_run("send-emails").processed == 2

    def test_unknown_job_returns_none(self):
        assert MetricsStore().get_last_run("nope") is None


class TestMetricsStoreAggregates:
    def test_total_runs_and_failures(self):
        """A run counts as failed when failures outnumber successes."""
        store = MetricsStore()
        now = datetime.now(timezone.utc)

        store.record_run("poll", started_at=now, processed=8, successful=8, failed=0)
        store.record_run("poll", started_at=now, processed=8, successful=0, failed=8)
        store.record_run("poll", started_at=now, processed=8, successful=4, failed=4)

        metrics = store.get_all_metrics()["poll"]
        assert metrics["total_runs"] == 3
        assert metrics["total_failures"] == 1
        assert metrics["last_run"]["successful"] == 4

    def test_get_all_metrics_per_job(self):
        store = MetricsStore()
        now = datetime.now(timezone.utc)

        store.record_run("poll", started_at=now, processed=1, successful=1, failed=0)
        store.record_run("send-emails", started_at=now, processed=3, successful=3, failed=0)

        assert set(store.get_all_metrics()) == {"poll", "send-emails"}

    def test_clear(self):
        store = MetricsStore()
        store.record_run("poll", started_at=datetime.now(timezone.utc), processed=1, successful=1, failed=0)

        store.clear()

        assert store.get_all_metrics() == {}
        assert store.get_last_run("poll") is None


class TestGlobalMetrics:
    def test_pipeline_metrics_is_store(self):
        assert isinstance(pipeline_metrics, MetricsStore)
