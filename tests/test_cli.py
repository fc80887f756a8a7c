"""
Tests for the command line interface
"""

import json
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import click
from click.testing import CliRunner

from src.recorder import cli as cli_module
from src.recorder.cli import cli, parse_timings


URL = "https://docs.google.com/presentation/d/abc/present"


@pytest.fixture
def captured(monkeypatch, tmp_path):
    """Replace the recording run with a stub that records its arguments"""
    monkeypatch.setenv("RECORDER_TEMP_DIR", str(tmp_path / "recordings"))
    calls = []

    async def fake_run(config, request, upload=True):
        calls.append((config, request, upload))
        return {"jobId": "job-1", "status": "completed", "artifactUrl": "file:///tmp/x.mp4"}

    monkeypatch.setattr(cli_module, "run_recording", fake_run)
    return calls


class TestParseTimings:

    def test_parse(self):
        assert parse_timings("5, 10,15.5") == (5.0, 10.0, 15.5)

    def test_invalid(self):
        with pytest.raises(click.BadParameter):
            parse_timings("5,soon")


class TestRecordCommand:
    """Tests for `record`"""

    def test_record_no_upload(self, captured):
        result = CliRunner().invoke(
            cli, ["record", "--url", URL, "--timings", "3,6,9", "--resolution", "1280x720", "--no-upload"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["status"] == "completed"
        config, request, upload = captured[0]
        assert request.timings == (3.0, 6.0, 9.0)
        assert str(config.resolution) == "1280x720"
        assert upload is False

    def test_record_rejects_decreasing_timings(self, captured):
        result = CliRunner().invoke(cli, ["record", "--url", URL, "--timings", "9,3"])

        assert result.exit_code != 0
        assert captured == []

    def test_record_rejects_bad_resolution(self, captured):
        result = CliRunner().invoke(cli, ["record", "--url", URL, "--timings", "3", "--resolution", "big"])

        assert result.exit_code != 0
        assert captured == []

    def test_failed_job_exit_code(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RECORDER_TEMP_DIR", str(tmp_path))

        async def failing_run(config, request, upload=True):
            return {"jobId": "job-1", "status": "failed", "error": "Missing dependencies: ffmpeg"}

        monkeypatch.setattr(cli_module, "run_recording", failing_run)

        result = CliRunner().invoke(cli, ["record", "--url", URL, "--timings", "3"])

        assert result.exit_code == 1
        assert "Missing dependencies" in result.output
