"""
Managed subprocess handle

Wraps an asyncio subprocess so orchestration code can read as straight-line
steps: spawn, wait(timeout), kill(signal), plus progress callbacks fed from
the process's diagnostic (stderr) stream.
"""

import asyncio
import logging
import re
import signal
from typing import Callable, Optional, Sequence

from .models import ProgressMarker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressMarker], None]

# ffmpeg rewrites its status line with \r, so split on both line endings
_LINE_SPLIT = re.compile(rb"[\r\n]")


class ManagedProcess:
    """
    Handle over one spawned subprocess.

    Usage:
        proc = await ManagedProcess.spawn("ffmpeg", args, capture_stderr=True)
        proc.on_progress(lambda marker: print(marker))
        ...
        proc.kill(signal.SIGTERM)
        exited = await proc.wait(timeout=10)
    """

    # Seconds to let the stderr reader drain after exit
    stderr_drain_timeout = 1.0

    def __init__(self, name: str, process: asyncio.subprocess.Process):
        self.name = name
        self._process = process
        self._callbacks: list[ProgressCallback] = []
        self._stderr_task: Optional[asyncio.Task] = None
        self._last_lines: list[str] = []

    @classmethod
    async def spawn(
        cls,
        command: str,
        args: Sequence[str] = (),
        env: Optional[dict] = None,
        capture_stderr: bool = False,
    ) -> "ManagedProcess":
        """
        Start a process. Raises OSError (e.g. FileNotFoundError) if the
        executable cannot be started.
        """
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            env=env,
        )
        handle = cls(command, process)
        if capture_stderr and process.stderr is not None:
            handle._stderr_task = asyncio.create_task(handle._read_stderr(process.stderr))
        logger.debug(f"Spawned {command} (PID: {process.pid})")
        return handle

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def running(self) -> bool:
        return self._process.returncode is None

    @property
    def last_output(self) -> str:
        """Tail of the diagnostic stream, for error messages"""
        return "\n".join(self._last_lines)

    def on_progress(self, callback: ProgressCallback) -> None:
        """Register a callback for frame/time markers on stderr"""
        self._callbacks.append(callback)

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        """Send a signal. Returns False if the process was already gone."""
        if not self.running:
            return False
        try:
            self._process.send_signal(sig)
            return True
        except ProcessLookupError:
            return False

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for exit. Returns True if the process exited within timeout."""
        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        if self._stderr_task is not None and not self._stderr_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=self.stderr_drain_timeout)
            except asyncio.TimeoutError:
                self._stderr_task.cancel()
                await asyncio.gather(self._stderr_task, return_exceptions=True)
        return True

    async def terminate(self, grace: float) -> bool:
        """
        SIGTERM, wait up to `grace` seconds, then SIGKILL.

        Returns True if the process exited on SIGTERM alone.
        """
        if not self.running:
            return True
        self.kill(signal.SIGTERM)
        if await self.wait(timeout=grace):
            return True
        logger.warning(f"{self.name} (PID: {self.pid}) ignored SIGTERM for {grace}s, killing")
        self.kill(signal.SIGKILL)
        await self.wait(timeout=grace)
        return False

    async def _read_stderr(self, stream: asyncio.StreamReader) -> None:
        buffer = b""
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = _LINE_SPLIT.split(buffer)
            for line in lines:
                self._handle_line(line)
        if buffer:
            self._handle_line(buffer)

    def _handle_line(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        self._last_lines = (self._last_lines + [line])[-5:]

        marker = ProgressMarker.parse(line)
        if marker is None:
            return
        for callback in self._callbacks:
            try:
                callback(marker)
            except Exception as e:
                # Progress is observability only
                logger.warning(f"Progress callback failed: {e}")
