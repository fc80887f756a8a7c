"""
Shared fixtures: a recorder config with every settle delay set to zero
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.recorder.config import RecorderConfig, Resolution


ZERO_DELAYS = dict(
    stale_display_delay=0,
    display_settle_delay=0,
    window_manager_settle_delay=0,
    page_settle_delay=0,
    overlay_dismiss_delay=0,
    presentation_mode_delay=0,
    advance_settle_delay=0,
    capture_warmup_delay=0,
    trailing_hold=0,
    encoder_stop_grace=0,
    process_stop_grace=0,
)


@pytest.fixture
def fast_config(tmp_path):
    return RecorderConfig(
        temp_dir=tmp_path / "recordings",
        resolution=Resolution(1280, 720),
        **ZERO_DELAYS,
    )
