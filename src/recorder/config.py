"""
Configuration for the Slide Recorder

Display, browser, encoder and storage settings. Every fixed delay used by the
recording engine lives here so tests can shrink them to zero.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Resolution:
    """Pixel size of the virtual display and of the captured video"""

    width: int = 1920
    height: int = 1080

    @classmethod
    def parse(cls, value: str) -> "Resolution":
        """Parse 'WIDTHxHEIGHT' (e.g. '1920x1080')"""
        try:
            width, height = value.lower().split("x", 1)
            resolution = cls(int(width), int(height))
        except ValueError:
            raise ValueError(f"Invalid resolution '{value}', expected WIDTHxHEIGHT")
        if resolution.width <= 0 or resolution.height <= 0:
            raise ValueError(f"Invalid resolution '{value}', dimensions must be positive")
        return resolution

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass
class StorageConfig:
    """Connection settings for the S3-compatible object store (MinIO)"""

    endpoint: str = "localhost"
    port: int = 9000
    use_ssl: bool = False
    access_key: str = "minioadmin"
    secret_key: str = "minioadmin"
    bucket: str = "slide-recordings"
    region: str = "us-east-1"

    @property
    def host(self) -> str:
        """host:port as expected by the MinIO client"""
        return f"{self.endpoint}:{self.port}"

    @property
    def public_base_url(self) -> str:
        """Public URL prefix for objects in the bucket"""
        scheme = "https" if self.use_ssl else "http"
        default_port = 443 if self.use_ssl else 80
        port = "" if self.port == default_port else f":{self.port}"
        return f"{scheme}://{self.endpoint}{port}/{self.bucket}"

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls(
            endpoint=os.getenv("MINIO_ENDPOINT", "localhost"),
            port=int(os.getenv("MINIO_PORT", "9000")),
            use_ssl=os.getenv("MINIO_USE_SSL", "false").lower() == "true",
            access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
            secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
            bucket=os.getenv("MINIO_BUCKET", "slide-recordings"),
        )


@dataclass
class RecorderConfig:
    """Configuration for one recording service instance"""

    # Virtual display
    display: str = ":99"
    resolution: Resolution = field(default_factory=Resolution)
    color_depth: int = 24
    dpi: int = 96
    display_executable: str = "Xvfb"
    window_managers: tuple[str, ...] = ("fluxbox", "openbox")

    # External executables (browser: primary name first, then fallback)
    browser_executables: tuple[str, ...] = ("google-chrome", "chromium-browser")
    encoder_executable: str = "ffmpeg"
    runtime_executable: str = "python3"

    # Encoder settings
    frame_rate: int = 30
    video_codec: str = "libx264"
    encoder_preset: str = "medium"
    crf: int = 20
    pixel_format: str = "yuv420p"

    # Local artifact storage before upload
    temp_dir: Path = field(default_factory=lambda: Path("temp-recordings"))

    # Settle delays and grace periods (seconds)
    stale_display_delay: float = 1.0
    display_settle_delay: float = 3.0
    window_manager_settle_delay: float = 2.0
    page_settle_delay: float = 8.0
    overlay_dismiss_delay: float = 1.0
    presentation_mode_delay: float = 2.0
    advance_settle_delay: float = 0.1
    capture_warmup_delay: float = 3.0
    trailing_hold: float = 5.0
    encoder_stop_grace: float = 10.0
    process_stop_grace: float = 5.0

    # Navigation ladder: (wait_until, timeout in milliseconds), tried in order
    navigation_strategies: tuple[tuple[str, int], ...] = (
        ("domcontentloaded", 60000),
        ("networkidle", 45000),
        ("load", 30000),
    )

    # Status table retention after a job becomes terminal
    retention_seconds: float = 300.0

    # Added to the last timing for the admission estimate
    estimate_padding: float = 10.0

    # Only presentation URLs containing this marker are accepted by the API
    source_url_marker: Optional[str] = "docs.google.com/presentation"

    storage: StorageConfig = field(default_factory=StorageConfig)

    def __post_init__(self):
        self.temp_dir = Path(self.temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def output_path(self, job_id: str) -> Path:
        """Local path of the artifact for a job"""
        return self.temp_dir / object_key(job_id)

    @classmethod
    def from_env(cls) -> "RecorderConfig":
        """Build a config from environment variables (and .env, if present)"""
        load_dotenv()

        kwargs = {"storage": StorageConfig.from_env()}
        if os.getenv("RECORDER_DISPLAY"):
            kwargs["display"] = os.environ["RECORDER_DISPLAY"]
        if os.getenv("RECORDER_RESOLUTION"):
            kwargs["resolution"] = Resolution.parse(os.environ["RECORDER_RESOLUTION"])
        if os.getenv("RECORDER_TEMP_DIR"):
            kwargs["temp_dir"] = Path(os.environ["RECORDER_TEMP_DIR"])
        if os.getenv("RECORDER_FRAME_RATE"):
            kwargs["frame_rate"] = int(os.environ["RECORDER_FRAME_RATE"])
        if os.getenv("RECORDER_RETENTION_SECONDS"):
            kwargs["retention_seconds"] = float(os.environ["RECORDER_RETENTION_SECONDS"])
        return cls(**kwargs)


def object_key(job_id: str) -> str:
    """Deterministic artifact name for a job (local file and stored object)"""
    return f"slideshow_{job_id}.mp4"


class Keys:
    """Keyboard keys sent to the presentation"""

    ADVANCE = "ArrowRight"
    DISMISS_OVERLAY = "Escape"
    PRESENTATION_MODE = "F5"


class AuthPatterns:
    """URL fragments that indicate a sign-in redirect"""

    SIGN_IN_URL_FRAGMENTS = (
        "accounts.google.com",
        "signin",
        "ServiceLogin",
    )

    @classmethod
    def matches(cls, url: str) -> bool:
        return any(fragment in url for fragment in cls.SIGN_IN_URL_FRAGMENTS)


# Injected before any page script runs, so the page cannot tell it is automated
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
window.chrome = { runtime: {} };
Object.defineProperty(navigator, 'permissions', {
    get: () => ({ query: () => Promise.resolve({ state: 'granted' }) })
});
"""
