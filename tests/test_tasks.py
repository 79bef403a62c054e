"""Tests for the periodic escrow release task."""

from datetime import UTC, datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import redis

from stayledger import tasks
from stayledger.config import settings
from stayledger.services.escrow_service import PayoutRunSummary
from stayledger.worker import celery_app


@pytest.fixture
def lock(monkeypatch) -> MagicMock:
    lock = MagicMock()
    client = MagicMock()
    client.lock.return_value = lock
    monkeypatch.setattr(tasks, "get_redis_client", lambda: client)
    return lock


def fake_run(result=None, error=None):
    def _run(coro):
        coro.close()
        if error is not None:
            raise error
        return result

    return _run


def test_tick_is_skipped_while_another_holds_the_lock(lock, monkeypatch):
    lock.acquire.return_value = False
    monkeypatch.setattr(tasks, "run_async", fake_run(error=AssertionError("must not run")))

    assert tasks.release_escrow_payouts() == {"status": "skipped"}
    lock.release.assert_not_called()


def test_tick_reports_summary_and_releases_lock(lock, monkeypatch):
    lock.acquire.return_value = True
    summary = PayoutRunSummary(
        started_at=datetime.now(UTC),
        eligible=3,
        released=[uuid4(), uuid4()],
        failed={uuid4(): "gateway timeout"},
    )
    monkeypatch.setattr(tasks, "run_async", fake_run(result=summary))

    result = tasks.release_escrow_payouts()

    assert result == {"status": "success", "eligible": 3, "released": 2, "failed": 1}
    lock.release.assert_called_once()


def test_lock_is_released_when_tick_crashes(lock, monkeypatch):
    lock.acquire.return_value = True
    monkeypatch.setattr(tasks, "run_async", fake_run(error=RuntimeError("db down")))

    with pytest.raises(RuntimeError):
        tasks.release_escrow_payouts()
    lock.release.assert_called_once()


def test_expired_lock_does_not_fail_the_tick(lock, monkeypatch):
    lock.acquire.return_value = True
    lock.release.side_effect = redis.exceptions.LockError("lock expired")
    summary = PayoutRunSummary(started_at=datetime.now(UTC))
    monkeypatch.setattr(tasks, "run_async", fake_run(result=summary))

    assert tasks.release_escrow_payouts()["status"] == "success"


def test_beat_runs_release_every_interval():
    entry = celery_app.conf.beat_schedule["release-escrow-payouts"]
    assert entry["task"] == "stayledger.tasks.release_escrow_payouts"
    assert entry["schedule"] == settings.escrow_release_interval_minutes * 60.0
