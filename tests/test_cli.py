"""Tests for the console front end and the microphone probe."""
import sys
import types

import pytest

from avatalk.cli import Console, build_parser
from avatalk.core.controller import ControllerConfig, SessionController
from avatalk.exceptions import PermissionDeniedError
from avatalk.models import Mode, Sender
from avatalk.orchestration.fsm import State
from avatalk.perception.microphone import SoundDeviceProbe, StaticProbe
from avatalk.persistence.session_log import SessionLog
from avatalk.persistence.store import InMemoryStore
from avatalk.transport.base import MockTransport
from avatalk.transport.token import StaticTokenProvider


@pytest.fixture
def console():
    controller = SessionController(
        token_provider=StaticTokenProvider(),
        permission_probe=StaticProbe(),
        transport_factory=MockTransport,
        session_log=SessionLog(InMemoryStore()),
        config=ControllerConfig(enable_greeting=False, enable_voice_warmup=False),
    )
    return Console(controller)


class TestConsole:
    """Test console command mapping."""

    @pytest.mark.asyncio
    async def test_conversation_commands(self, console):
        """Test start, send and injected avatar speech."""
        await console.handle("/start")
        await console.handle("Hallo")
        await console.handle("/avatar Welkom! Hoe gaat het?")

        messages = [(m.sender, m.text) for m in console.controller.messages]
        assert messages == [
            (Sender.USER, "Hallo"),
            (Sender.AVATAR, "Welkom!"),
            (Sender.AVATAR, "Hoe gaat het?"),
        ]

    @pytest.mark.asyncio
    async def test_mode_and_mic_commands(self, console):
        """Test voice mode with the microphone gate."""
        await console.handle("/start")
        await console.handle("/mode voice")
        await console.handle("/hear niet gehoord")
        await console.handle("/mic")
        await console.handle("/hear wel gehoord")

        controller = console.controller
        assert controller.mode == Mode.VOICE
        assert controller.mic_enabled is True
        assert [m.text for m in controller.messages] == ["wel gehoord"]

    @pytest.mark.asyncio
    async def test_bad_mode_argument(self, console, capsys):
        """Test an unknown mode prints usage."""
        await console.handle("/start")
        await console.handle("/mode loud")

        assert "usage" in capsys.readouterr().out
        assert console.controller.mode == Mode.TEXT

    @pytest.mark.asyncio
    async def test_end_and_render(self, console, capsys):
        """Test end and the status line."""
        await console.handle("/start")
        await console.handle("/end")
        console.render()

        assert console.controller.state == State.IDLE
        assert "[idle]" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_inject_without_session(self, console, capsys):
        """Test injection needs a running session."""
        await console.handle("/avatar Hallo.")

        assert "Injection needs" in capsys.readouterr().out

    def test_parser_flags(self):
        """Test command line options."""
        args = build_parser().parse_args(["--token", "abc", "--skip-mic-check"])

        assert args.token == "abc"
        assert args.skip_mic_check is True


class TestSoundDeviceProbe:
    """Test SoundDeviceProbe with a stand-in sounddevice module."""

    @staticmethod
    def fake_sounddevice(fail: bool) -> types.ModuleType:
        module = types.ModuleType("sounddevice")

        class PortAudioError(Exception):
            pass

        class InputStream:
            def __init__(self, **kwargs):
                if fail:
                    raise PortAudioError("no input device")

            def start(self):
                pass

            def stop(self):
                pass

            def close(self):
                pass

        module.PortAudioError = PortAudioError
        module.InputStream = InputStream
        return module

    @pytest.mark.asyncio
    async def test_granted(self, monkeypatch):
        """Test an openable input device passes."""
        monkeypatch.setitem(sys.modules, "sounddevice", self.fake_sounddevice(fail=False))

        await SoundDeviceProbe().check()

    @pytest.mark.asyncio
    async def test_denied(self, monkeypatch):
        """Test a failing input device raises PermissionDeniedError."""
        monkeypatch.setitem(sys.modules, "sounddevice", self.fake_sounddevice(fail=True))

        with pytest.raises(PermissionDeniedError):
            await SoundDeviceProbe().check()
