"""
Dependency checks for the external executables the recorder drives
"""

import shutil
from dataclasses import dataclass
from typing import Callable, Optional

from .config import RecorderConfig


@dataclass(frozen=True)
class Dependency:
    """A capability and the executables that can provide it"""

    name: str
    executables: tuple[str, ...]


class DependencyChecker:
    """Resolves required executables on PATH. Pure query, no side effects."""

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.config = config or RecorderConfig()
        self._which = which

    @property
    def dependencies(self) -> list[Dependency]:
        config = self.config
        return [
            Dependency("xvfb", (config.display_executable,)),
            Dependency("google-chrome", tuple(config.browser_executables)),
            Dependency("ffmpeg", (config.encoder_executable,)),
            Dependency("python", (config.runtime_executable,)),
        ]

    def check(self) -> set[str]:
        """Return the names of capabilities with no resolvable executable"""
        return {
            dep.name
            for dep in self.dependencies
            if not any(self._which(exe) for exe in dep.executables)
        }

    def resolve_browser(self) -> Optional[str]:
        """Full path of the first available browser executable"""
        for exe in self.config.browser_executables:
            path = self._which(exe)
            if path:
                return path
        return None
