"""
Screen capture with FFmpeg x11grab

Records the virtual display's framebuffer into an H.264 MP4 with the moov
atom up front (+faststart) so the file is streamable once finalized.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import RecorderConfig, Resolution
from .display import DisplaySession
from .errors import EncoderSpawnError
from .process import ManagedProcess, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass
class CaptureHandle:
    """A running encoder bound to one display"""

    process: ManagedProcess
    output_path: Path
    display: str
    closed: bool = False


class CaptureProcess:
    """
    Spawns and stops the FFmpeg encoder.

    Usage:
        capture = CaptureProcess(config)
        handle = await capture.start(display_session, resolution, output_path)
        ...
        await capture.stop(handle)
    """

    def __init__(self, config: Optional[RecorderConfig] = None):
        self.config = config or RecorderConfig()

    def build_args(self, display: str, resolution: Resolution, output_path: Path) -> list[str]:
        """FFmpeg arguments for capturing `display` into `output_path`"""
        config = self.config
        return [
            "-f", "x11grab",
            "-video_size", str(resolution),
            "-framerate", str(config.frame_rate),
            "-i", f"{display}.0+0,0",
            "-c:v", config.video_codec,
            "-preset", config.encoder_preset,
            "-crf", str(config.crf),
            "-pix_fmt", config.pixel_format,
            # libx264 rejects odd dimensions
            "-vf", "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            "-movflags", "+faststart",
            "-y",
            str(output_path),
        ]

    async def start(
        self,
        display: DisplaySession,
        resolution: Resolution,
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CaptureHandle:
        """
        Start recording the display.

        Raises:
            EncoderSpawnError: ffmpeg could not be started or exited during warm-up
        """
        logger.info("Starting screen recording...")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_args(display.display, resolution, output_path)
        logger.debug(f"Running FFmpeg: {self.config.encoder_executable} {' '.join(args)}")

        try:
            process = await ManagedProcess.spawn(
                self.config.encoder_executable, args, env=display.env, capture_stderr=True
            )
        except OSError as e:
            raise EncoderSpawnError(f"Failed to start {self.config.encoder_executable}: {e}") from e

        started = False

        def _progress(marker):
            nonlocal started
            if not started:
                started = True
                logger.info("Screen recording started")
            logger.debug(f"Encoder progress: {marker}")

        process.on_progress(_progress)
        if on_progress is not None:
            process.on_progress(on_progress)

        handle = CaptureHandle(process=process, output_path=output_path, display=display.display)

        # The encoder must survive warm-up before slides start advancing
        if await process.wait(timeout=self.config.capture_warmup_delay):
            handle.closed = True
            raise EncoderSpawnError(
                f"Encoder exited during startup (code {process.returncode}): {process.last_output}"
            )
        return handle

    async def stop(self, handle: Optional[CaptureHandle]) -> None:
        """
        SIGTERM the encoder and wait up to the grace period for it to finalize
        the file. After the grace period the handle is closed regardless.
        Idempotent, never raises.
        """
        if handle is None or handle.closed:
            return
        logger.info("Stopping screen recording...")
        try:
            finished = await handle.process.terminate(self.config.encoder_stop_grace)
            if not finished:
                logger.warning(
                    f"Encoder did not finish within {self.config.encoder_stop_grace}s, "
                    f"{handle.output_path.name} may be truncated"
                )
        except Exception as e:
            logger.warning(f"Error while stopping encoder: {e}")
        finally:
            handle.closed = True
