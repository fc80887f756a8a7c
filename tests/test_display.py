"""
Tests for the virtual display manager (no real Xvfb is started)
"""

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.recorder import display as display_module
from src.recorder.display import DisplayManager, DisplayState
from src.recorder.errors import DisplayStartError
from src.recorder.process import ManagedProcess


def fake_process(exits_early=False, returncode=None):
    process = MagicMock()
    process.pid = 4242
    process.returncode = returncode
    process.wait = AsyncMock(return_value=exits_early)
    process.terminate = AsyncMock(return_value=True)
    return process


@pytest.fixture
def pkill(monkeypatch):
    """Replace the stale-display pkill with a no-op process"""
    proc = MagicMock()
    proc.wait = AsyncMock(return_value=1)
    mock = AsyncMock(return_value=proc)
    monkeypatch.setattr(display_module.asyncio, "create_subprocess_exec", mock)
    return mock


@pytest.fixture
def spawned(monkeypatch):
    """Record ManagedProcess.spawn calls and hand out fake processes"""
    calls = []
    processes = {}

    async def _spawn(command, args=(), env=None, capture_stderr=False):
        calls.append((command, list(args), env))
        process = processes.get(command) or fake_process()
        processes[command] = process
        return process

    monkeypatch.setattr(ManagedProcess, "spawn", staticmethod(_spawn))
    return calls, processes


class TestDisplayStart:
    """Tests for bringing up Xvfb"""

    @pytest.mark.asyncio
    async def test_start_without_window_manager(self, fast_config, pkill, spawned, monkeypatch):
        calls, processes = spawned
        monkeypatch.setattr(display_module.shutil, "which", lambda name: None)
        manager = DisplayManager(fast_config)

        session = await manager.start()

        command, args, _ = calls[0]
        assert command == "Xvfb"
        assert args[0] == ":99"
        assert "1280x720x24" in args
        assert "-dpi" in args and "96" in args
        assert session.window_manager is None
        assert session.env["DISPLAY"] == ":99"
        assert manager.state == DisplayState.RUNNING

        pkill_args = pkill.call_args.args
        assert pkill_args[:3] == ("pkill", "-f", "Xvfb :99")

    @pytest.mark.asyncio
    async def test_start_with_window_manager(self, fast_config, pkill, spawned, monkeypatch):
        calls, _ = spawned
        monkeypatch.setattr(
            display_module.shutil, "which",
            lambda name: "/usr/bin/openbox" if name == "openbox" else None,
        )
        manager = DisplayManager(fast_config)

        session = await manager.start()

        assert [c[0] for c in calls] == ["Xvfb", "openbox"]
        assert calls[1][2]["DISPLAY"] == ":99"
        assert session.window_manager is not None

    @pytest.mark.asyncio
    async def test_xvfb_dies_during_settle(self, fast_config, pkill, spawned):
        _, processes = spawned
        processes["Xvfb"] = fake_process(exits_early=True, returncode=1)
        manager = DisplayManager(fast_config)

        with pytest.raises(DisplayStartError, match="exited during startup"):
            await manager.start()
        assert manager.state == DisplayState.IDLE

    @pytest.mark.asyncio
    async def test_xvfb_not_installed(self, fast_config, pkill, monkeypatch):
        async def _spawn(*args, **kwargs):
            raise FileNotFoundError("Xvfb")

        monkeypatch.setattr(ManagedProcess, "spawn", staticmethod(_spawn))
        manager = DisplayManager(fast_config)

        with pytest.raises(DisplayStartError):
            await manager.start()

    @pytest.mark.asyncio
    async def test_missing_pkill_tolerated(self, fast_config, spawned, monkeypatch):
        monkeypatch.setattr(
            display_module.asyncio, "create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("pkill")),
        )
        monkeypatch.setattr(display_module.shutil, "which", lambda name: None)

        session = await DisplayManager(fast_config).start()

        assert session.process is not None


class TestDisplayStop:
    """Tests for teardown"""

    @pytest.mark.asyncio
    async def test_stop_terminates_wm_then_display(self, fast_config, pkill, spawned, monkeypatch):
        monkeypatch.setattr(display_module.shutil, "which", lambda name: f"/usr/bin/{name}")
        manager = DisplayManager(fast_config)
        session = await manager.start()

        await manager.stop(session)
        await manager.stop(session)

        session.window_manager.terminate.assert_awaited_once()
        session.process.terminate.assert_awaited_once()
        assert session.closed
        assert manager.state == DisplayState.IDLE

    @pytest.mark.asyncio
    async def test_stop_never_raises(self, fast_config, pkill, spawned, monkeypatch):
        monkeypatch.setattr(display_module.shutil, "which", lambda name: None)
        manager = DisplayManager(fast_config)
        session = await manager.start()
        session.process.terminate.side_effect = ProcessLookupError()

        await manager.stop(session)

        assert session.closed

    @pytest.mark.asyncio
    async def test_stop_none(self, fast_config):
        await DisplayManager(fast_config).stop(None)
