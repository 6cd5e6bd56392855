"""Tests for ingest run control and metrics."""
import time
import pytest

from price_insights.jobs.metrics import Metrics
from price_insights.jobs.run_control import RunControl


def test_no_limits_never_stops():
    """Without limits errors never stop the run."""
    control = RunControl()
    for _ in range(10):
        control.record_error("boom")
    assert control.should_stop() == (False, None)


def test_max_errors():
    """Total errors count across successes."""
    control = RunControl(max_errors=2)
    control.record_error()
    control.record_success()
    assert control.should_stop()[0] is False
    control.record_error()
    assert control.should_stop() == (True, "Reached max_errors=2")


def test_consecutive_errors_reset_on_success():
    """A success resets the consecutive error run."""
    control = RunControl(max_consecutive_errors=2)
    control.record_error()
    control.record_success()
    control.record_error()
    assert control.should_stop()[0] is False
    control.record_error()
    assert control.should_stop()[0] is True


def test_fail_fast_reports_last_error():
    """fail_fast stops on the first error and names it."""
    control = RunControl(fail_fast=True)
    assert control.should_stop()[0] is False
    control.record_error("bad row")
    assert control.should_stop() == (True, "fail_fast: bad row")


def test_metrics_summary():
    """The summary reports the row counters and elapsed time."""
    metrics = Metrics(total=4, job_id="job-1")
    metrics.increment("processed", 2)
    metrics.increment("ok")
    metrics.increment("failed")
    summary = metrics.get_summary()
    assert metrics.processed == 2
    assert summary["processed"] == 2
    assert summary["ok"] == 1
    assert summary["failed"] == 1
    assert summary["new_products"] == 0
    assert summary["elapsed_seconds"] >= 0
    metrics.report()


def test_metrics_eta():
    """The ETA extrapolates the current rate over the remaining rows."""
    metrics = Metrics(total=4)
    metrics.start_time = time.time() - 10
    metrics.increment("processed")
    # one row in 10s, three left
    assert metrics.get_eta() == pytest.approx(30.0, rel=0.01)
    assert Metrics(total=4).get_eta() == 0.0
