"""
Tests for the Recording API

Uses FastAPI's TestClient against a mocked coordinator; no browser, display
or object store is involved.

Run with: pytest tests/test_recording_api.py -v
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from src.api.recording_api import create_app, to_present_url
from src.recorder.errors import JobNotFoundError, RecorderBusyError, UploadError
from src.recorder.models import AdmissionResult, JobState, RecordingJob, RecordingRequest
from src.recorder.upload import StoredRecording


EDIT_URL = "https://docs.google.com/presentation/d/abc/edit"
PRESENT_URL = "https://docs.google.com/presentation/d/abc/present"


@pytest.fixture
def coordinator():
    coordinator = MagicMock()
    coordinator.checker.check.return_value = set()
    coordinator.active_job_id = None
    coordinator.uploader = None
    coordinator.jobs.return_value = []
    coordinator.submit.return_value = AdmissionResult(
        job_id="job-1", status="started", estimated_duration_seconds=19.0
    )
    return coordinator


@pytest.fixture
def client(coordinator, fast_config):
    return TestClient(create_app(coordinator=coordinator, config=fast_config))


class TestPresentUrl:
    """Tests for editor -> presentation link rewriting"""

    def test_edit_link(self):
        assert to_present_url(EDIT_URL) == PRESENT_URL

    def test_edit_link_with_fragment(self):
        assert to_present_url(EDIT_URL + "#slide=id.p") == PRESENT_URL + "#slide=id.p"

    def test_present_link_unchanged(self):
        assert to_present_url(PRESENT_URL + "?start=false") == PRESENT_URL + "?start=false"

    def test_presentation_prefix_is_not_present_mode(self):
        assert to_present_url(EDIT_URL + "?usp=sharing") == PRESENT_URL + "?usp=sharing"
        assert to_present_url(PRESENT_URL) == PRESENT_URL


class TestStartRecording:
    """Tests for POST /record"""

    def test_started(self, client, coordinator):
        response = client.post("/record", json={"slideUrl": EDIT_URL, "timings": [3, 6, 9]})

        assert response.status_code == 200
        data = response.json()
        assert data["jobId"] == "job-1"
        assert data["status"] == "started"
        assert data["estimatedDurationSeconds"] == 19.0

        request = coordinator.submit.call_args.args[0]
        assert request.source_url == PRESENT_URL
        assert request.timings == (3.0, 6.0, 9.0)

    def test_busy(self, client, coordinator):
        coordinator.submit.side_effect = RecorderBusyError("other-job")

        response = client.post("/record", json={"slideUrl": EDIT_URL, "timings": [3]})

        assert response.status_code == 429
        assert "busy" in response.json()["detail"]

    def test_wrong_host_rejected(self, client, coordinator):
        response = client.post("/record", json={"slideUrl": "https://example.com/deck", "timings": [3]})

        assert response.status_code == 400
        coordinator.submit.assert_not_called()

    @pytest.mark.parametrize("timings", [[3, 2], [0, 1], [-1]])
    def test_bad_timings(self, client, coordinator, timings):
        response = client.post("/record", json={"slideUrl": EDIT_URL, "timings": timings})

        assert response.status_code == 400
        coordinator.submit.assert_not_called()

    @pytest.mark.parametrize("body", [
        {"slideUrl": EDIT_URL},
        {"timings": [1, 2]},
        {"slideUrl": EDIT_URL, "timings": []},
        {"slideUrl": EDIT_URL, "timings": ["soon"]},
    ])
    def test_malformed_body(self, client, coordinator, body):
        response = client.post("/record", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request body"
        coordinator.submit.assert_not_called()


class TestRecordingStatus:
    """Tests for GET /recording/{job_id}"""

    def test_known_job(self, client, coordinator):
        job = RecordingJob(id="job-1", request=RecordingRequest(PRESENT_URL, (3,)), state=JobState.RECORDING)
        coordinator.status.return_value = job.snapshot()

        response = client.get("/recording/job-1")

        assert response.status_code == 200
        assert response.json()["status"] == "recording"
        assert response.json()["stage"] == "recording"

    def test_unknown_job(self, client, coordinator):
        coordinator.status.side_effect = JobNotFoundError("nope")

        response = client.get("/recording/nope")

        assert response.status_code == 404
        assert response.json()["detail"] == "Recording nope not found or expired"


class TestRecordingsAndHealth:
    """Tests for listing, deleting and health"""

    def test_list_without_storage(self, client):
        response = client.get("/recordings")

        assert response.status_code == 200
        assert response.json()["recordings"] == []
        assert response.json()["count"] == 0

    def test_list_with_storage(self, client, coordinator):
        coordinator.uploader = MagicMock()
        coordinator.uploader.list_recordings = AsyncMock(return_value=[
            StoredRecording(
                recording_id="abc",
                filename="slideshow_abc.mp4",
                file_size=2 * 1024 * 1024,
                last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
                download_url="http://localhost:9000/slide-recordings/slideshow_abc.mp4",
            )
        ])

        data = client.get("/recordings").json()

        assert data["count"] == 1
        assert data["totalSizeMB"] == 2.0
        assert data["recordings"][0]["recordingId"] == "abc"

    def test_delete(self, client, coordinator):
        coordinator.uploader = MagicMock()
        coordinator.uploader.delete_recording = AsyncMock(return_value=True)

        response = client.delete("/recording/abc")

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_delete_missing(self, client, coordinator):
        coordinator.uploader = MagicMock()
        coordinator.uploader.delete_recording = AsyncMock(return_value=False)

        assert client.delete("/recording/abc").status_code == 404

    def test_list_store_unreachable(self, client, coordinator):
        coordinator.uploader = MagicMock()
        coordinator.uploader.list_recordings = AsyncMock(side_effect=UploadError("MinIO listing failed: refused"))

        response = client.get("/recordings")

        assert response.status_code == 502
        assert response.json()["detail"] == "MinIO listing failed: refused"

    def test_delete_store_unreachable(self, client, coordinator):
        coordinator.uploader = MagicMock()
        coordinator.uploader.delete_recording = AsyncMock(side_effect=UploadError("MinIO delete failed: refused"))

        assert client.delete("/recording/abc").status_code == 502

    def test_delete_without_storage(self, client):
        assert client.delete("/recording/abc").status_code == 503

    def test_health(self, client, coordinator):
        coordinator.checker.check.return_value = {"ffmpeg"}

        data = client.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["dependencies"] == "missing: ffmpeg"
        assert data["storage"] == {"status": "disabled"}
        assert data["activeJobId"] is None
