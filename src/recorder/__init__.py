"""
Slide Recorder - records a public presentation into an MP4 on a virtual display

Architecture: Coordinator + single-use resource chain
- DependencyChecker: verifies Xvfb, Chrome/Chromium, FFmpeg are installed
- DisplayManager: Xvfb virtual display (+ fluxbox/openbox if available)
- BrowserSession: Playwright-driven Chrome showing the presentation
- CaptureProcess: FFmpeg x11grab recording of the display
- TimingScheduler: presses "next slide" at the requested timestamps
- UploadPipeline: stores the MP4 in MinIO and removes the local copy
- StatusStore: in-memory job table polled by the API
- RecordingCoordinator: admission (one job at a time), state machine, cleanup

Usage:
    # HTTP service
    python -m src.recorder.cli serve --port 3003

    # One-off recording
    python -m src.recorder.cli record --url "https://docs.google.com/presentation/d/ID/present" --timings 5,10,15
"""

from .config import RecorderConfig, StorageConfig, Resolution
from .errors import (
    RecorderError,
    InvalidRequestError,
    RecorderBusyError,
    JobNotFoundError,
    DependencyMissingError,
    DisplayStartError,
    NavigationError,
    AuthRequiredError,
    EncoderSpawnError,
    EncoderEmptyOutputError,
    UploadError,
)
from .models import RecordingRequest, RecordingJob, JobSnapshot, JobState, AdmissionResult
from .dependencies import DependencyChecker
from .display import DisplayManager, DisplaySession
from .browser import BrowserSession
from .capture import CaptureProcess, CaptureHandle
from .scheduler import TimingScheduler
from .upload import UploadPipeline, StoredRecording
from .status_store import StatusStore
from .coordinator import RecordingCoordinator

__all__ = [
    "RecorderConfig",
    "StorageConfig",
    "Resolution",
    "RecorderError",
    "InvalidRequestError",
    "RecorderBusyError",
    "JobNotFoundError",
    "DependencyMissingError",
    "DisplayStartError",
    "NavigationError",
    "AuthRequiredError",
    "EncoderSpawnError",
    "EncoderEmptyOutputError",
    "UploadError",
    "RecordingRequest",
    "RecordingJob",
    "JobSnapshot",
    "JobState",
    "AdmissionResult",
    "DependencyChecker",
    "DisplayManager",
    "DisplaySession",
    "BrowserSession",
    "CaptureProcess",
    "CaptureHandle",
    "TimingScheduler",
    "UploadPipeline",
    "StoredRecording",
    "StatusStore",
    "RecordingCoordinator",
]
