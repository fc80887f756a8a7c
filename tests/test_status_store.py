"""
Tests for the in-memory job status table
"""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.recorder.errors import JobNotFoundError
from src.recorder.models import JobState, RecordingJob, RecordingRequest
from src.recorder.status_store import StatusStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def make_job(job_id="job-1"):
    return RecordingJob(
        id=job_id,
        request=RecordingRequest("https://docs.google.com/presentation/d/x/present", (1,)),
    )


class TestStatusStore:
    """Tests for put/get/update"""

    def test_put_and_get(self):
        store = StatusStore()
        store.put(make_job())
        snapshot = store.get("job-1")
        assert snapshot.state == JobState.QUEUED
        assert len(store) == 1

    def test_unknown_job(self):
        store = StatusStore()
        with pytest.raises(JobNotFoundError):
            store.get("missing")
        with pytest.raises(JobNotFoundError):
            store.update("missing", lambda job: None)

    def test_update_stamps_last_update(self):
        clock = FakeClock()
        store = StatusStore(clock=clock)
        store.put(make_job())
        clock.advance(7)

        snapshot = store.update("job-1", lambda job: setattr(job, "state", JobState.RECORDING))

        assert snapshot.state == JobState.RECORDING
        assert snapshot.last_update == clock.now
        assert snapshot.finished_at is None

    def test_terminal_update_sets_finished_at(self):
        clock = FakeClock()
        store = StatusStore(clock=clock)
        store.put(make_job())

        snapshot = store.update("job-1", lambda job: setattr(job, "state", JobState.FAILED))

        assert snapshot.finished_at == clock.now

    def test_active(self):
        store = StatusStore()
        assert store.active() is None
        store.put(make_job())
        assert store.active().id == "job-1"
        store.update("job-1", lambda job: setattr(job, "state", JobState.COMPLETED))
        assert store.active() is None


class TestRetention:
    """Tests for eviction of finished jobs"""

    def test_terminal_job_evicted_after_retention(self):
        clock = FakeClock()
        store = StatusStore(retention_seconds=300, clock=clock)
        store.put(make_job())
        store.update("job-1", lambda job: setattr(job, "state", JobState.COMPLETED))

        clock.advance(299)
        assert store.get("job-1").state == JobState.COMPLETED

        clock.advance(1)
        with pytest.raises(JobNotFoundError):
            store.get("job-1")
        assert len(store) == 0

    def test_running_job_never_evicted(self):
        clock = FakeClock()
        store = StatusStore(retention_seconds=1, clock=clock)
        store.put(make_job())
        store.update("job-1", lambda job: setattr(job, "state", JobState.RECORDING))

        clock.advance(3600)

        assert store.get("job-1").state == JobState.RECORDING

    def test_list_evicts(self):
        clock = FakeClock()
        store = StatusStore(retention_seconds=10, clock=clock)
        store.put(make_job("old"))
        store.update("old", lambda job: setattr(job, "state", JobState.FAILED))
        clock.advance(20)
        store.put(make_job("new"))

        assert [s.id for s in store.list()] == ["new"]
