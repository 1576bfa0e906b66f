"""Tests for the management CLI's dead job listing."""

from datetime import UTC, datetime, timedelta

from manage import list_dead_jobs
from ordering.scheduling.scheduler import AUTO_CANCEL


def test_no_dead_jobs(job_queue, capsys):
    assert list_dead_jobs() == 0
    assert "No dead jobs." in capsys.readouterr().out


def test_lists_dead_jobs_with_last_error(job_queue, capsys):
    now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    job_queue.enqueue("auto-cancel-ord-1", AUTO_CANCEL, {"order_id": "ord-1"}, timedelta(0), now=now)
    for attempt in range(3):
        job_queue.claim_due(now=now + timedelta(hours=attempt + 1))
        job_queue.fail("auto-cancel-ord-1", "database unavailable", now=now)

    assert list_dead_jobs(job_queue) == 1
    out = capsys.readouterr().out
    assert "auto-cancel-ord-1" in out
    assert "attempts=3" in out
    assert "database unavailable" in out
