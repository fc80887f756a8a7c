"""
Virtual Display Manager - Xvfb plus an optional lightweight window manager

Only one display exists per process: it is bound to the well-known display
identifier from RecorderConfig (":99" by default).
"""

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .config import RecorderConfig, Resolution
from .errors import DisplayStartError
from .process import ManagedProcess

logger = logging.getLogger(__name__)


class DisplayState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class DisplaySession:
    """A running virtual display"""

    display: str
    resolution: Resolution
    process: ManagedProcess
    window_manager: Optional[ManagedProcess] = None
    closed: bool = field(default=False)

    @property
    def env(self) -> dict:
        """Environment for processes that should render on this display"""
        return {**os.environ, "DISPLAY": self.display}


class DisplayManager:
    """
    Starts and stops the virtual display.

    Usage:
        manager = DisplayManager(config)
        session = await manager.start(config.resolution)
        ...
        await manager.stop(session)
    """

    def __init__(self, config: Optional[RecorderConfig] = None):
        self.config = config or RecorderConfig()
        self.state = DisplayState.IDLE

    def _xvfb_args(self, resolution: Resolution) -> list[str]:
        return [
            self.config.display,
            "-screen", "0", f"{resolution}x{self.config.color_depth}",
            "-ac",
            "+extension", "GLX",
            "+extension", "RANDR",
            "+extension", "RENDER",
            "-noreset",
            "-dpi", str(self.config.dpi),
            "-fbdir", "/tmp",
        ]

    async def start(self, resolution: Optional[Resolution] = None) -> DisplaySession:
        """
        Start a fresh virtual display.

        Raises:
            DisplayStartError: Xvfb could not be spawned or died while settling
        """
        resolution = resolution or self.config.resolution
        self.state = DisplayState.STARTING
        logger.info(f"Starting virtual display {self.config.display} at {resolution}...")

        await self._kill_stale_display()

        try:
            process = await ManagedProcess.spawn(
                self.config.display_executable, self._xvfb_args(resolution)
            )
        except OSError as e:
            self.state = DisplayState.IDLE
            raise DisplayStartError(f"Failed to spawn {self.config.display_executable}: {e}") from e

        # Liveness: the server must still be running after the settle window
        if await process.wait(timeout=self.config.display_settle_delay):
            self.state = DisplayState.IDLE
            raise DisplayStartError(
                f"Virtual display exited during startup (code {process.returncode})"
            )

        logger.info(f"Virtual display started (PID: {process.pid})")
        session = DisplaySession(display=self.config.display, resolution=resolution, process=process)
        session.window_manager = await self._start_window_manager(session)
        self.state = DisplayState.RUNNING
        return session

    async def stop(self, session: Optional[DisplaySession]) -> None:
        """Stop window manager and display. Idempotent, never raises."""
        if session is None or session.closed:
            return
        self.state = DisplayState.STOPPING
        try:
            if session.window_manager is not None:
                logger.info("Stopping window manager...")
                await session.window_manager.terminate(self.config.process_stop_grace)
            logger.info("Stopping virtual display...")
            await session.process.terminate(self.config.process_stop_grace)
        except Exception as e:
            logger.warning(f"Error while stopping virtual display: {e}")
        finally:
            session.closed = True
            self.state = DisplayState.IDLE

    async def _kill_stale_display(self) -> None:
        """Best effort: kill any Xvfb left bound to our display"""
        try:
            pkill = await asyncio.create_subprocess_exec(
                "pkill", "-f", f"{self.config.display_executable} {self.config.display}",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            if await pkill.wait() == 0:
                logger.info("Killed existing Xvfb processes")
        except OSError as e:
            logger.debug(f"pkill unavailable: {e}")
        await asyncio.sleep(self.config.stale_display_delay)

    async def _start_window_manager(self, session: DisplaySession) -> Optional[ManagedProcess]:
        """Start the first available window manager; absence is not an error"""
        for name in self.config.window_managers:
            if not shutil.which(name):
                continue
            try:
                wm = await ManagedProcess.spawn(name, env=session.env)
            except OSError as e:
                logger.warning(f"{name} failed to start: {e}")
                continue
            logger.info(f"Started {name} window manager")
            await asyncio.sleep(self.config.window_manager_settle_delay)
            return wm

        logger.warning(
            f"No window manager available ({'/'.join(self.config.window_managers)} not found)"
        )
        logger.info("Recording will continue without window manager")
        return None
