"""
Recording Coordinator - admission control and the recording state machine

One job at a time: the virtual display, the browser and the capture target
are process-wide singletons, so a second concurrent job would corrupt both
recordings. Admission returns immediately; the job runs as a background task
that is the only writer of its StatusStore entry.

States:
    queued -> checking_dependencies -> starting_display -> launching_browser
           -> recording -> uploading -> completed
    any stage -> failed (after the single cleanup path)
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional

from .browser import BrowserSession
from .capture import CaptureHandle, CaptureProcess
from .config import RecorderConfig
from .dependencies import DependencyChecker
from .display import DisplayManager, DisplaySession
from .errors import (
    DependencyMissingError,
    EncoderEmptyOutputError,
    RecorderBusyError,
    RecorderError,
)
from .models import (
    AdmissionResult,
    JobSnapshot,
    JobState,
    ProgressMarker,
    RecordingJob,
    RecordingRequest,
)
from .scheduler import TimingScheduler
from .status_store import StatusStore
from .upload import UploadPipeline

logger = logging.getLogger(__name__)


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes log lines with the short job id"""

    def process(self, msg, kwargs):
        return f"[{self.extra['job_id'][:8]}] {msg}", kwargs


class RecordingCoordinator:
    """
    Runs recording jobs end to end.

    Usage:
        coordinator = RecordingCoordinator(config, uploader=UploadPipeline(config.storage))
        admission = coordinator.submit(RecordingRequest(url, (3, 6, 9)))
        snapshot = await coordinator.wait(admission.job_id)
    """

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        *,
        store: Optional[StatusStore] = None,
        checker: Optional[DependencyChecker] = None,
        display_manager: Optional[DisplayManager] = None,
        capture: Optional[CaptureProcess] = None,
        scheduler: Optional[TimingScheduler] = None,
        uploader: Optional[UploadPipeline] = None,
        browser_factory: Callable[[RecorderConfig], BrowserSession] = BrowserSession,
        job_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.config = config if config is not None else RecorderConfig()
        self.store = store if store is not None else StatusStore(retention_seconds=self.config.retention_seconds)
        self.checker = checker if checker is not None else DependencyChecker(self.config)
        self.display_manager = display_manager if display_manager is not None else DisplayManager(self.config)
        self.capture = capture if capture is not None else CaptureProcess(self.config)
        self.scheduler = scheduler if scheduler is not None else TimingScheduler(trailing_hold=self.config.trailing_hold)
        self.uploader = uploader
        self._browser_factory = browser_factory
        self._job_id_factory = job_id_factory

        # Exclusively owned by the in-flight job
        self._task: Optional[asyncio.Task] = None
        self._active_job_id: Optional[str] = None
        self._display: Optional[DisplaySession] = None
        self._browser: Optional[BrowserSession] = None
        self._capture: Optional[CaptureHandle] = None

    # ========== ADMISSION ==========

    @property
    def active_job_id(self) -> Optional[str]:
        return self._active_job_id

    def submit(self, request: RecordingRequest) -> AdmissionResult:
        """
        Admit a job and start it in the background.

        Must be called from a running event loop. There is no await between
        the busy check and taking the slot, so admission is atomic.

        Raises:
            RecorderBusyError: a job is already in flight
        """
        if self._active_job_id is not None:
            raise RecorderBusyError(self._active_job_id)

        job = RecordingJob(id=self._job_id_factory(), request=request)
        run = self._run(job.id, request)
        try:
            task = asyncio.create_task(run, name=f"recording-{job.id}")
        except RuntimeError:
            # No running event loop: leave the slot free and the store untouched
            run.close()
            raise

        # The task cannot start before the next await, so this is still atomic
        self.store.put(job)
        self._active_job_id = job.id
        self._task = task

        return AdmissionResult(
            job_id=job.id,
            status="started",
            estimated_duration_seconds=request.duration + self.config.estimate_padding,
        )

    async def wait(self, job_id: str) -> JobSnapshot:
        """Wait for the in-flight task (if it is this job) and return its snapshot"""
        task = self._task
        if task is not None and self._active_job_id == job_id:
            await asyncio.shield(task)
        return self.store.get(job_id)

    def status(self, job_id: str) -> JobSnapshot:
        return self.store.get(job_id)

    def jobs(self) -> list[JobSnapshot]:
        return self.store.list()

    # ========== JOB EXECUTION ==========

    async def _run(self, job_id: str, request: RecordingRequest) -> None:
        log = JobLogAdapter(logger, {"job_id": job_id})
        output_path = self.config.output_path(job_id)

        try:
            log.info(f"Starting recording for: {request.source_url}")
            log.info(f"Timings: {', '.join(f'{t:g}' for t in request.timings)}")

            # 1. Dependencies (nothing acquired yet)
            self._set_state(job_id, JobState.CHECKING_DEPENDENCIES)
            missing = self.checker.check()
            if missing:
                raise DependencyMissingError(missing)
            executable = self.checker.resolve_browser()
            if executable is None:
                raise DependencyMissingError({"google-chrome"})

            # 2. Virtual display
            self._set_state(job_id, JobState.STARTING_DISPLAY)
            self._display = await self.display_manager.start(self.config.resolution)

            # 3. Browser
            self._set_state(job_id, JobState.LAUNCHING_BROWSER)
            self._browser = self._browser_factory(self.config)
            await self._browser.launch(executable, self._display)
            await self._browser.navigate(request.source_url)
            await self._browser.prime_for_capture()

            # 4. Capture + slide transitions
            self._set_state(job_id, JobState.RECORDING)
            self._capture = await self.capture.start(
                self._display,
                self._display.resolution,
                output_path,
                on_progress=lambda marker: self._record_progress(job_id, marker),
            )
            await self.scheduler.run(request.timings, self._browser)
            await self.capture.stop(self._capture)

            # Release display/browser before upload
            await self.cleanup()

            size = self._verify_artifact(output_path)

            # 5. Upload
            if self.uploader is not None:
                self._set_state(job_id, JobState.UPLOADING)
                log.info("Uploading recording to MinIO...")
                artifact_url = await self.uploader.publish(output_path, job_id)
            else:
                artifact_url = output_path.resolve().as_uri()

            self.store.update(job_id, lambda job: _complete(job, artifact_url, size))
            log.info(f"Recording completed: {artifact_url}")

        except asyncio.CancelledError:
            log.warning("Recording cancelled")
            await self.cleanup()
            self._discard_artifact(output_path, log)
            self.store.update(
                job_id, lambda job: _fail(job, "Recording cancelled by shutdown", "CancelledError")
            )
            raise

        except Exception as e:
            if isinstance(e, RecorderError):
                log.error(f"Recording failed: {e}")
            else:
                log.exception(f"Recording failed with unexpected error: {e}")
            await self.cleanup()
            self._discard_artifact(output_path, log)
            self.store.update(job_id, lambda job: _fail(job, str(e), type(e).__name__))

        finally:
            self._active_job_id = None

    async def cleanup(self) -> None:
        """
        Release capture, browser and display, in that order.

        Runs on every path. Each step is a no-op for a resource that was never
        acquired or is already released, so calling this twice is safe.
        """
        capture, self._capture = self._capture, None
        browser, self._browser = self._browser, None
        display, self._display = self._display, None

        if capture is not None:
            await self.capture.stop(capture)
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Browser cleanup failed: {e}")
        if display is not None:
            await self.display_manager.stop(display)

    async def shutdown(self) -> None:
        """Cancel the in-flight job (if any) and release everything"""
        task = self._task
        if task is not None and not task.done():
            logger.info("Shutting down: cancelling active recording...")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.cleanup()

    # ========== HELPERS ==========

    def _set_state(self, job_id: str, state: JobState) -> None:
        def _mutate(job: RecordingJob) -> None:
            job.state = state
            job.progress = None

        self.store.update(job_id, _mutate)

    def _record_progress(self, job_id: str, marker: ProgressMarker) -> None:
        self.store.update(job_id, lambda job: setattr(job, "progress", str(marker)))

    @staticmethod
    def _verify_artifact(path: Path) -> int:
        """Size of the finished recording; empty or missing output is an error"""
        if not path.exists():
            raise EncoderEmptyOutputError("Recording file was not created")
        size = path.stat().st_size
        if size == 0:
            raise EncoderEmptyOutputError("Recording file is empty")
        return size

    @staticmethod
    def _discard_artifact(path: Path, log: logging.LoggerAdapter) -> None:
        """Partial or empty recordings are never kept"""
        if not path.exists():
            return
        try:
            path.unlink()
            log.info(f"Deleted incomplete recording {path.name}")
        except OSError as e:
            log.warning(f"Failed to cleanup temp file: {e}")


def _complete(job: RecordingJob, artifact_url: str, size: int) -> None:
    job.state = JobState.COMPLETED
    job.progress = None
    job.error = None
    job.error_type = None
    job.artifact_url = artifact_url
    job.artifact_size_bytes = size


def _fail(job: RecordingJob, message: str, error_type: str) -> None:
    job.state = JobState.FAILED
    job.error = message or error_type
    job.error_type = error_type
