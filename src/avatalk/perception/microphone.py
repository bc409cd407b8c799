"""Microphone permission probe.

Before a session starts the controller checks that audio input can be
opened at all. The sounddevice probe opens an input stream and closes it
again straight away; nothing is recorded.
"""
from abc import ABC, abstractmethod

from ..exceptions import PermissionDeniedError
from ..logging_config import setup_logger

logger = setup_logger("avatalk.microphone")


class BasePermissionProbe(ABC):
    """Base class for microphone permission probes."""

    @abstractmethod
    async def check(self) -> None:
        """Raise PermissionDeniedError if the microphone is unavailable."""
        pass


class SoundDeviceProbe(BasePermissionProbe):
    """Probe the default input device through sounddevice."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels

    async def check(self) -> None:
        try:
            # PortAudio is loaded on import and may be missing on headless hosts
            import sounddevice as sd
        except OSError as e:
            logger.error(f"No audio backend available: {e}")
            raise PermissionDeniedError(f"No audio backend available: {e}") from e

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
            )
            stream.start()
            stream.stop()
            stream.close()
        except (sd.PortAudioError, ValueError) as e:
            logger.error(f"Microphone access denied: {e}")
            raise PermissionDeniedError(f"Microphone access denied: {e}") from e
        logger.debug("Microphone access granted")


class StaticProbe(BasePermissionProbe):
    """Probe with a fixed answer (tests, headless use)."""

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.checks = 0

    async def check(self) -> None:
        self.checks += 1
        if not self.granted:
            raise PermissionDeniedError("Microphone access denied")
