"""
Recording job data model

RecordingRequest is validated once at admission and never changes afterwards.
RecordingJob is the mutable record owned by the coordinator; JobSnapshot is
the detached copy handed out to status readers.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .errors import InvalidRequestError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RecordingRequest:
    """Source presentation plus the times (seconds) at which to advance"""

    source_url: str
    timings: tuple[float, ...]

    def __post_init__(self):
        if not self.source_url or not isinstance(self.source_url, str):
            raise InvalidRequestError("source_url must be a non-empty string")

        timings = tuple(self.timings or ())
        if not timings:
            raise InvalidRequestError("timings must be a non-empty list of positive numbers")

        for t in timings:
            if isinstance(t, bool) or not isinstance(t, (int, float)):
                raise InvalidRequestError(f"Invalid timing {t!r}: must be a number")
            if not math.isfinite(t) or t <= 0:
                raise InvalidRequestError(f"Invalid timing {t!r}: must be a positive finite number")

        for previous, current in zip(timings, timings[1:]):
            if current <= previous:
                raise InvalidRequestError(
                    f"timings must be strictly increasing ({previous} followed by {current})"
                )

        object.__setattr__(self, "timings", tuple(float(t) for t in timings))

    @property
    def duration(self) -> float:
        """Time of the last slide advance"""
        return self.timings[-1]


class JobState(str, Enum):
    """Lifecycle stages of a recording job"""

    QUEUED = "queued"
    CHECKING_DEPENDENCIES = "checking_dependencies"
    STARTING_DISPLAY = "starting_display"
    LAUNCHING_BROWSER = "launching_browser"
    RECORDING = "recording"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass
class ProgressMarker:
    """Frame/time marker parsed from the encoder's diagnostic output"""

    frame: Optional[int] = None
    time: Optional[str] = None
    raw: str = ""

    _FRAME_RE = re.compile(r"frame=\s*(\d+)")
    _TIME_RE = re.compile(r"time=\s*(\S+)")

    @classmethod
    def parse(cls, line: str) -> Optional["ProgressMarker"]:
        """Return a marker if the line carries frame= or time=, else None"""
        if "frame=" not in line and "time=" not in line:
            return None
        frame = cls._FRAME_RE.search(line)
        time = cls._TIME_RE.search(line)
        return cls(
            frame=int(frame.group(1)) if frame else None,
            time=time.group(1) if time else None,
            raw=line.strip(),
        )

    def __str__(self) -> str:
        parts = []
        if self.frame is not None:
            parts.append(f"frame={self.frame}")
        if self.time is not None:
            parts.append(f"time={self.time}")
        return " ".join(parts) or self.raw


@dataclass
class RecordingJob:
    """A single recording run, mutated only by the coordinator's task"""

    id: str
    request: RecordingRequest
    state: JobState = JobState.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    last_update: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    progress: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    artifact_url: Optional[str] = None
    artifact_size_bytes: Optional[int] = None

    def snapshot(self) -> "JobSnapshot":
        return JobSnapshot(
            id=self.id,
            source_url=self.request.source_url,
            timings=self.request.timings,
            state=self.state,
            created_at=self.created_at,
            last_update=self.last_update,
            finished_at=self.finished_at,
            progress=self.progress,
            error=self.error,
            error_type=self.error_type,
            artifact_url=self.artifact_url,
            artifact_size_bytes=self.artifact_size_bytes,
        )


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only copy of a RecordingJob"""

    id: str
    source_url: str
    timings: tuple[float, ...]
    state: JobState
    created_at: datetime
    last_update: datetime
    finished_at: Optional[datetime] = None
    progress: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    artifact_url: Optional[str] = None
    artifact_size_bytes: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """JSON-ready view used by the API and CLI"""
        now = now or utcnow()
        end = self.finished_at or now
        data: dict[str, Any] = {
            "jobId": self.id,
            "status": self.state.value,
            "sourceUrl": self.source_url,
            "timings": list(self.timings),
            "createdAt": self.created_at.isoformat(),
            "lastUpdate": self.last_update.isoformat(),
            "durationSeconds": round((end - self.created_at).total_seconds(), 2),
        }
        if not self.is_terminal:
            data["stage"] = self.state.value
            data["progress"] = self.progress
        if self.finished_at:
            data["finishedAt"] = self.finished_at.isoformat()
        if self.state is JobState.COMPLETED:
            data["artifactUrl"] = self.artifact_url
            data["fileSize"] = self.artifact_size_bytes
            if self.artifact_size_bytes is not None:
                data["fileSizeMB"] = round(self.artifact_size_bytes / 1024 / 1024, 2)
        if self.state is JobState.FAILED:
            data["error"] = self.error or "Recording failed"
            data["errorType"] = self.error_type
        return data


@dataclass(frozen=True)
class AdmissionResult:
    """Returned to the caller as soon as a job is admitted"""

    job_id: str
    status: str
    estimated_duration_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "status": self.status,
            "estimatedDurationSeconds": self.estimated_duration_seconds,
        }
