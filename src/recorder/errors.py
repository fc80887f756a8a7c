"""
Recorder error taxonomy

Every stage of a recording job raises one of these. They are caught only by
the RecordingCoordinator, which records the message on the job.
"""

from typing import Iterable


class RecorderError(Exception):
    """Base class for all recording engine errors"""


class InvalidRequestError(RecorderError, ValueError):
    """Recording request rejected at admission (bad URL or timings)"""


class RecorderBusyError(RecorderError):
    """Another recording job is still in flight"""

    def __init__(self, active_job_id: str):
        super().__init__(
            "System busy. Another recording is in progress. Please wait."
        )
        self.active_job_id = active_job_id


class JobNotFoundError(RecorderError, KeyError):
    """Unknown or expired job id"""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Recording {self.job_id} not found or expired"


class DependencyMissingError(RecorderError):
    """Required executables are not installed"""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(f"Missing dependencies: {', '.join(self.missing)}")


class DisplayStartError(RecorderError):
    """Virtual display did not come up"""


class NavigationError(RecorderError):
    """All page load strategies failed"""

    def __init__(self, url: str, attempts: list[tuple[str, str]]):
        self.url = url
        self.attempts = attempts
        details = "; ".join(f"{strategy}: {reason}" for strategy, reason in attempts)
        super().__init__(f"Could not load {url} ({details})")


class AuthRequiredError(RecorderError):
    """The presentation redirected to a sign-in page"""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            "Authentication required. Please ensure the presentation is publicly accessible."
        )


class EncoderSpawnError(RecorderError):
    """The encoder could not be started or died during warm-up"""


class EncoderEmptyOutputError(RecorderError):
    """The encoder exited without producing a usable file"""


class UploadError(RecorderError):
    """The artifact could not be stored in the object store"""
