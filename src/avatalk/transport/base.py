"""Avatar transport facade.

The streaming avatar connection (audio/video plus an event channel) is an
external service. The controller only relies on the capability surface
defined by BaseAvatarTransport; media internals stay behind it.
"""
import inspect
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..config import AvatarConfig, VoiceOptionsConfig
from ..exceptions import TransportError
from ..logging_config import setup_logger

logger = setup_logger("avatalk.transport")


class TransportEvent(str, Enum):
    """Event kinds emitted by the avatar transport."""

    STREAM_READY = "stream_ready"
    STREAM_DISCONNECTED = "stream_disconnected"
    USER_FRAGMENT = "user_talking_message"
    AVATAR_FRAGMENT = "avatar_talking_message"
    USER_START = "user_start"
    USER_STOP = "user_stop"
    USER_SILENCE = "user_silence"
    AVATAR_START_TALKING = "avatar_start_talking"
    AVATAR_STOP_TALKING = "avatar_stop_talking"


@dataclass
class TransportEventPayload:
    """An event delivered by the transport."""
    kind: TransportEvent
    message: Optional[str] = None
    detail: Any = None


@dataclass
class VoiceChatOptions:
    """Options for starting voice chat on the transport."""
    use_silence_prompt: bool = True
    silence_timeout_ms: Optional[int] = None
    silence_threshold_db: Optional[int] = None
    is_input_audio_muted: bool = False

    @classmethod
    def from_config(cls, config: VoiceOptionsConfig) -> "VoiceChatOptions":
        return cls(
            use_silence_prompt=config.use_silence_prompt,
            silence_timeout_ms=config.silence_timeout_ms,
            silence_threshold_db=config.silence_threshold_db,
            is_input_audio_muted=config.is_input_audio_muted,
        )


@dataclass
class StartOptions:
    """Avatar session parameters sent along with the credential."""
    avatar_name: str = ""
    knowledge_id: str = ""
    language: str = "nl"
    quality: str = "high"

    @classmethod
    def from_config(cls, config: AvatarConfig) -> "StartOptions":
        return cls(
            avatar_name=config.avatar_id,
            knowledge_id=config.knowledge_id,
            language=config.language,
            quality=config.quality,
        )


EventHandler = Callable[[TransportEventPayload], Awaitable[None]]


class BaseAvatarTransport(ABC):
    """Base class for avatar transport implementations.

    Operations raise TransportError on failure. Handlers for one event kind
    are invoked in registration order.
    """

    def __init__(self):
        self._handlers: Dict[TransportEvent, List[EventHandler]] = defaultdict(list)
        self.media_stream: Any = None

    @abstractmethod
    async def connect(self, credential: str, options: Optional[StartOptions] = None) -> None:
        """Open the avatar session with an access credential."""
        pass

    @abstractmethod
    async def speak(self, text: str, skip_message: bool = False) -> None:
        """Have the avatar say ``text``."""
        pass

    @abstractmethod
    async def start_voice(self, options: VoiceChatOptions) -> None:
        """Start voice chat (microphone input to the avatar)."""
        pass

    @abstractmethod
    async def stop_voice(self) -> None:
        """Stop voice chat."""
        pass

    @abstractmethod
    async def set_input_muted(self, muted: bool) -> None:
        """Enable or disable the outgoing audio track without restarting voice chat."""
        pass

    @abstractmethod
    async def interrupt(self) -> None:
        """Cut off the avatar's current utterance."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Tear down the avatar session."""
        pass

    def on(self, kind: TransportEvent, handler: EventHandler) -> Callable[[], None]:
        """Subscribe a handler to an event kind.

        Returns:
            Unsubscribe function that removes the handler when called
        """
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[kind]:
                self._handlers[kind].remove(handler)

        return unsubscribe

    async def emit(self, payload: TransportEventPayload) -> None:
        """Deliver an event to every handler of its kind."""
        for handler in list(self._handlers[payload.kind]):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result


class MockTransport(BaseAvatarTransport):
    """Mock transport for testing and the console.

    Records every call in ``calls``. Operation names listed in ``fail_on``
    raise TransportError.
    """

    def __init__(self, fail_on: Optional[Set[str]] = None):
        super().__init__()
        self.fail_on: Set[str] = set(fail_on or ())
        self.calls: List[tuple] = []
        self.connected = False
        self.voice_active = False
        self.input_muted = False
        self.credential: Optional[str] = None
        self.start_options: Optional[StartOptions] = None

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail_on:
            raise TransportError(f"Mock {operation} failed")

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def connect(self, credential: str, options: Optional[StartOptions] = None) -> None:
        self._record("connect", credential, options)
        self.credential = credential
        self.start_options = options
        self.connected = True
        self.media_stream = object()
        logger.info("Mock transport connected")

    async def speak(self, text: str, skip_message: bool = False) -> None:
        if not self.connected:
            raise TransportError("Not connected")
        self._record("speak", text, skip_message)

    async def start_voice(self, options: VoiceChatOptions) -> None:
        self._record("start_voice", options)
        self.voice_active = True
        self.input_muted = options.is_input_audio_muted

    async def stop_voice(self) -> None:
        self._record("stop_voice")
        self.voice_active = False

    async def set_input_muted(self, muted: bool) -> None:
        self._record("set_input_muted", muted)
        self.input_muted = muted

    async def interrupt(self) -> None:
        self._record("interrupt")

    async def stop(self) -> None:
        self._record("stop")
        self.connected = False
        self.voice_active = False
        self.media_stream = None
        logger.info("Mock transport disconnected")

    async def inject(self, kind: TransportEvent, message: Optional[str] = None, detail: Any = None) -> None:
        """Emit an event as if it came from the avatar service."""
        await self.emit(TransportEventPayload(kind=kind, message=message, detail=detail))


def create_transport(transport_type: str = "mock", **kwargs) -> BaseAvatarTransport:
    """Factory function to create transport."""
    if transport_type == "mock":
        return MockTransport(**kwargs)
    else:
        raise TransportError(f"Unknown transport type: {transport_type}")
