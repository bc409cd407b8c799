"""Session Controller - Ties transport, transcript and session log together."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from ..config import Config, get_config
from ..exceptions import PermissionDeniedError, TokenError, TransportError
from ..logging_config import setup_logger
from ..models import Message, Mode, Sender
from ..orchestration.fsm import Event, FiniteStateMachine, State, create_session_fsm
from ..orchestration.transcript import TranscriptAssembler
from ..perception.microphone import BasePermissionProbe, SoundDeviceProbe
from ..persistence.session_log import SessionLog
from ..persistence.store import create_store
from ..transport.base import (
    BaseAvatarTransport,
    StartOptions,
    TransportEvent,
    TransportEventPayload,
    VoiceChatOptions,
    create_transport,
)
from ..transport.token import BaseTokenProvider, HttpTokenProvider

logger = setup_logger("avatalk.controller")

DISABLED_HINT = "Start a session first"


@dataclass
class ControllerConfig:
    """Configuration for the session controller."""
    greeting_text: str = "Hoi"
    greeting_delay_s: float = 1.0
    voice_warmup_delay_s: float = 0.1
    toast_duration_s: float = 3.0
    enable_greeting: bool = True
    enable_voice_warmup: bool = True
    voice_mode_options: VoiceChatOptions = field(
        default_factory=lambda: VoiceChatOptions(
            use_silence_prompt=True,
            silence_timeout_ms=100,
            silence_threshold_db=-50,
        )
    )
    voice_warmup_options: VoiceChatOptions = field(
        default_factory=lambda: VoiceChatOptions(
            use_silence_prompt=True,
            silence_timeout_ms=5000,
            is_input_audio_muted=True,
        )
    )
    start_options: StartOptions = field(default_factory=StartOptions)

    @classmethod
    def from_config(cls, config: Config) -> "ControllerConfig":
        session = config.session
        return cls(
            greeting_text=session.greeting_text,
            greeting_delay_s=session.greeting_delay_s,
            voice_warmup_delay_s=session.voice_warmup_delay_s,
            toast_duration_s=session.toast_duration_s,
            voice_mode_options=VoiceChatOptions.from_config(session.voice_mode),
            voice_warmup_options=VoiceChatOptions.from_config(session.voice_warmup),
            start_options=StartOptions.from_config(config.avatar),
        )


class SessionController:
    """Conversational session controller for a streaming avatar.

    Owns:
    - the avatar transport handle and its event subscriptions
    - the lifecycle FSM (idle -> connecting -> live -> ending -> idle)
    - interaction mode and microphone gate
    - the in-memory transcript

    Transport events are routed through ``dispatch``. Failures of the
    transport or the store never propagate out of the public operations;
    they end up in ``debug`` and the log instead.
    """

    def __init__(
        self,
        token_provider: BaseTokenProvider,
        permission_probe: BasePermissionProbe,
        transport_factory: Callable[[], BaseAvatarTransport],
        session_log: SessionLog,
        assembler: Optional[TranscriptAssembler] = None,
        config: Optional[ControllerConfig] = None
    ):
        self.config = config or ControllerConfig()
        self.token_provider = token_provider
        self.permission_probe = permission_probe
        self.transport_factory = transport_factory
        self.session_log = session_log
        self.assembler = assembler or TranscriptAssembler(greeting_text=self.config.greeting_text)

        self.fsm: FiniteStateMachine = create_session_fsm()
        self.fsm.add_state_handler(State.LIVE, self._schedule_warmup)

        # Session state
        self.transport: Optional[BaseAvatarTransport] = None
        self.session_id: Optional[str] = None
        self.mode: Mode = Mode.TEXT
        self.mic_enabled: bool = False
        self.messages: List[Message] = []
        self.input_text: str = ""

        # Observable UI state
        self.debug: str = ""
        self.toast: Optional[str] = None
        self.is_user_talking: bool = False
        self.is_avatar_talking: bool = False
        self.media_stream: Any = None

        self._generation = 0
        self._unsubscribers: List[Callable[[], None]] = []
        self._scheduled: List[asyncio.Task] = []
        self._toast_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> State:
        """Current lifecycle state."""
        return self.fsm.current_state

    # Lifecycle

    async def start(self) -> bool:
        """Connect a new avatar session. Only valid from IDLE."""
        if self.state != State.IDLE:
            logger.warning(f"start() ignored in state {self.state.value}")
            return False

        self._generation += 1
        generation = self._generation
        await self.fsm.transition(Event.START_REQUESTED)

        try:
            credential = await self.token_provider.get_token()
        except TokenError as e:
            self._report(f"Token error: {e}")
            await self._abort_start(generation)
            return False

        if self._superseded(generation):
            return False

        try:
            await self.permission_probe.check()
        except PermissionDeniedError as e:
            logger.error(f"Microphone access denied: {e}")
            self._report("Microphone access denied. Check your audio settings.")
            await self._abort_start(generation)
            return False

        if self._superseded(generation):
            return False

        transport = self.transport_factory()
        self.transport = transport
        self._subscribe(transport)

        # Logging runs alongside the connect and does not depend on it
        log_task = asyncio.create_task(self.session_log.open())
        connected = False
        try:
            await transport.connect(credential, self.config.start_options)
            connected = True
        except TransportError as e:
            self._report(f"Session error: {e}")
        except Exception as e:
            self._report(f"Unexpected session error: {e}")
        finally:
            session_id = await log_task

        if self._superseded(generation):
            logger.warning("Session ended while connecting, discarding transport")
            await self._discard(transport, session_id)
            return False

        if not connected:
            self._release_transport()
            await self._discard(transport, session_id)
            await self.fsm.transition(Event.CONNECT_FAILED)
            return False

        self.session_id = session_id
        if session_id is None:
            logger.warning("Session log unavailable, continuing without durable record")
        self.mode = Mode.TEXT
        self.mic_enabled = False
        if transport.media_stream is not None:
            self.media_stream = transport.media_stream

        await self.fsm.transition(Event.CONNECTED)
        logger.info(f"Avatar session live (log session: {session_id})")
        return True

    async def end(self) -> None:
        """Tear the session down. Safe to call repeatedly and while connecting."""
        if self.state in (State.IDLE, State.ENDING):
            return

        self._generation += 1
        await self.fsm.transition(Event.END_REQUESTED)

        try:
            self._cancel_scheduled()
            transport = self.transport
            self._release_transport()

            if self.session_id:
                try:
                    if not await self.session_log.close(self.session_id):
                        self._report(f"Could not close session log {self.session_id}")
                except Exception as e:
                    self._report(f"End session error: {e}")

            if transport is not None:
                if self.mode == Mode.VOICE:
                    try:
                        await transport.stop_voice()
                    except Exception as e:
                        self._report(f"Error closing voice chat: {e}")
                try:
                    await transport.stop()
                except Exception as e:
                    self._report(f"End session error: {e}")
        finally:
            self._reset_session_state()
            await self.fsm.transition(Event.TEARDOWN_COMPLETE)

        logger.info("Avatar session ended")

    async def close(self) -> None:
        """End any running session and release the session store."""
        await self.end()
        self._cancel_toast()
        await self.session_log.store.close()

    async def clear(self) -> None:
        """End the running session, if any, and empty the transcript."""
        if self.state != State.IDLE:
            await self.end()
        self.messages.clear()
        self.assembler.reset()

    # User intents

    async def send_text(self, text: str) -> bool:
        """Send typed text to the avatar.

        The message is committed to the transcript before the transport
        acknowledges it and stays there if speaking fails.
        """
        text = (text or "").strip()
        if self.state == State.IDLE:
            self.notify_disabled()
            return False
        if self.state != State.LIVE or self.transport is None or not text:
            return False
        if self.mode != Mode.TEXT:
            logger.debug("send_text() ignored in voice mode")
            return False

        transport = self.transport
        message = Message(text=text, sender=Sender.USER, session_id=self.session_id)
        self._append(message)
        self.input_text = ""

        spoken = True
        try:
            await transport.speak(text)
        except TransportError as e:
            self._report(f"Speak error: {e}")
            spoken = False

        await self._log_message(message)
        return spoken

    async def set_mode(self, new_mode: Mode) -> bool:
        """Switch between text and voice interaction."""
        if self.state == State.IDLE:
            self.notify_disabled()
            return False
        if self.state != State.LIVE or self.transport is None or new_mode == self.mode:
            return False

        generation = self._generation
        try:
            if new_mode == Mode.VOICE:
                await self.transport.start_voice(self.config.voice_mode_options)
            else:
                await self.transport.stop_voice()
        except TransportError as e:
            self._report(f"Mode change error: {e}")
            return False

        if self._superseded(generation):
            return False

        logger.info(f"Mode: {self.mode.value} -> {new_mode.value}")
        self.mode = new_mode
        return True

    async def toggle_microphone(self) -> bool:
        """Flip the microphone gate and return its new value.

        The flag flips first. Only in voice mode is the transport's audio
        track muted or unmuted to match.
        """
        self.mic_enabled = not self.mic_enabled
        status = "Microphone on" if self.mic_enabled else "Microphone off"

        if self.state == State.LIVE and self.mode == Mode.VOICE and self.transport is not None:
            try:
                await self.transport.set_input_muted(not self.mic_enabled)
            except TransportError as e:
                self._report(f"Microphone error: {e}")
                status = "Microphone could not be switched"

        self.show_toast(status)
        return self.mic_enabled

    async def interrupt(self) -> bool:
        """Cut off the avatar mid-utterance."""
        if self.state != State.LIVE or self.transport is None:
            return False
        try:
            await self.transport.interrupt()
        except TransportError as e:
            self._report(f"Interrupt error: {e}")
            return False
        return True

    def notify_disabled(self) -> None:
        """Tell the user that a session has to be started first."""
        self.show_toast(DISABLED_HINT)

    # Transport events

    async def dispatch(self, payload: TransportEventPayload) -> None:
        """Route a transport event to its handler."""
        kind = payload.kind

        if kind == TransportEvent.STREAM_DISCONNECTED:
            logger.info("Stream disconnected")
            await self.end()
            return

        if kind == TransportEvent.STREAM_READY:
            if self.state in (State.CONNECTING, State.LIVE):
                logger.info("Stream ready")
                self.media_stream = payload.detail
            return

        if self.state != State.LIVE:
            logger.debug(f"Ignoring {kind.value} in state {self.state.value}")
            return

        if kind == TransportEvent.USER_FRAGMENT:
            await self._on_user_fragment(payload.message)
        elif kind == TransportEvent.AVATAR_FRAGMENT:
            await self._on_avatar_fragment(payload.message)
        elif kind == TransportEvent.USER_START:
            self.is_user_talking = True
        elif kind == TransportEvent.USER_STOP:
            self.is_user_talking = False
        elif kind == TransportEvent.AVATAR_START_TALKING:
            self.is_avatar_talking = True
        elif kind == TransportEvent.AVATAR_STOP_TALKING:
            self.is_avatar_talking = False
        elif kind == TransportEvent.USER_SILENCE:
            logger.debug("User is silent")

    async def _on_user_fragment(self, raw: Optional[str]) -> None:
        message = self.assembler.ingest_user_fragment(
            raw or "",
            mode=self.mode,
            mic_open=self.mic_enabled,
            transcript=self.messages,
            session_id=self.session_id,
        )
        if message is not None and self._append(message):
            await self._log_message(message)

    async def _on_avatar_fragment(self, raw: Optional[str]) -> None:
        sentences = self.assembler.ingest_avatar_fragment(raw or "", session_id=self.session_id)
        accepted = [message for message in sentences if self._append(message)]
        for message in accepted:
            await self._log_message(message)

    # Helpers

    def _append(self, message: Message) -> bool:
        """Append to the transcript unless it repeats the previous message."""
        if self.messages:
            last = self.messages[-1]
            if last.sender == message.sender and last.text == message.text:
                return False
        self.messages.append(message)
        return True

    async def _log_message(self, message: Message) -> None:
        if self.session_id is None:
            logger.debug("No log session held, message not logged")
            return
        generation = self._generation
        logged = await self.session_log.append(message.sender, message.text)
        if self._superseded(generation):
            await self._close_orphaned_log()
        elif logged:
            # The log may have replaced a timed-out session
            current = self.session_log.session_id
            if current and current != self.session_id:
                logger.info(f"Log session replaced: {self.session_id} -> {current}")
                self.session_id = current
        else:
            logger.warning("Message could not be logged")

    async def _close_orphaned_log(self) -> None:
        """Close a log session opened for a controller session that has since ended."""
        orphan = self.session_log.session_id
        if orphan and orphan != self.session_id:
            logger.info(f"Closing log session opened after end: {orphan}")
            await self.session_log.close(orphan)

    def _subscribe(self, transport: BaseAvatarTransport) -> None:
        for kind in TransportEvent:
            self._unsubscribers.append(transport.on(kind, self.dispatch))

    def _release_transport(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.transport = None

    async def _discard(self, transport: BaseAvatarTransport, session_id: Optional[str]) -> None:
        """Best-effort cleanup after a start() that did not go live."""
        try:
            await transport.stop()
        except Exception as e:
            logger.warning(f"Error stopping discarded transport: {e}")
        if session_id:
            await self.session_log.close(session_id)

    async def _abort_start(self, generation: int) -> None:
        if not self._superseded(generation):
            await self.fsm.transition(Event.CONNECT_FAILED)

    def _superseded(self, generation: int) -> bool:
        return generation != self._generation

    def _reset_session_state(self) -> None:
        self.session_id = None
        self.mode = Mode.TEXT
        self.mic_enabled = False
        self.messages = []
        self.input_text = ""
        self.is_user_talking = False
        self.is_avatar_talking = False
        self.media_stream = None
        self.assembler.reset()

    def _report(self, message: str) -> None:
        self.debug = message
        logger.error(message)

    # Scheduled work

    def _schedule_warmup(self) -> None:
        if self.config.enable_greeting and self.config.greeting_text:
            self._schedule(self.config.greeting_delay_s, self._speak_greeting)
        if self.config.enable_voice_warmup:
            self._schedule(self.config.voice_warmup_delay_s, self._warm_up_voice)

    def _schedule(self, delay_s: float, action: Callable[[], Awaitable[None]]) -> None:
        self._scheduled = [task for task in self._scheduled if not task.done()]
        self._scheduled.append(asyncio.create_task(self._run_later(delay_s, action)))

    async def _run_later(self, delay_s: float, action: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay_s)
        await action()

    def _cancel_scheduled(self) -> None:
        for task in self._scheduled:
            if not task.done():
                task.cancel()
        self._scheduled.clear()

    async def _speak_greeting(self) -> None:
        """Greet the user. The greeting never enters the transcript."""
        if self.state != State.LIVE or self.transport is None:
            return
        try:
            await self.transport.speak(self.config.greeting_text, skip_message=True)
        except TransportError as e:
            self._report(f"Greeting error: {e}")

    async def _warm_up_voice(self) -> None:
        """Start voice chat with input muted so a later switch is fast."""
        if self.state != State.LIVE or self.transport is None:
            return
        try:
            await self.transport.start_voice(self.config.voice_warmup_options)
        except TransportError as e:
            self._report(f"Voice chat error: {e}")

    # Toast

    def show_toast(self, text: str) -> None:
        """Show a transient status message that clears itself."""
        self._cancel_toast()
        self.toast = text
        try:
            loop = asyncio.get_running_loop()
            self._toast_handle = loop.call_later(self.config.toast_duration_s, self._clear_toast)
        except RuntimeError:
            # No running event loop - toast stays until replaced
            pass

    def _clear_toast(self) -> None:
        self.toast = None
        self._toast_handle = None

    def _cancel_toast(self) -> None:
        if self._toast_handle is not None:
            self._toast_handle.cancel()
            self._toast_handle = None


def create_controller(
    config: Optional[Config] = None,
    token_provider: Optional[BaseTokenProvider] = None,
    permission_probe: Optional[BasePermissionProbe] = None,
    transport_factory: Optional[Callable[[], BaseAvatarTransport]] = None,
    session_log: Optional[SessionLog] = None
) -> SessionController:
    """Factory function to build a controller from configuration."""
    config = config or get_config()

    token_provider = token_provider or HttpTokenProvider(config.avatar.token_url)
    permission_probe = permission_probe or SoundDeviceProbe()
    transport_factory = transport_factory or (lambda: create_transport(config.avatar.transport))
    session_log = session_log or SessionLog(
        create_store(config.store),
        timeout_s=config.session.timeout_s,
        store_config=config.store,
    )

    controller_config = ControllerConfig.from_config(config)
    return SessionController(
        token_provider=token_provider,
        permission_probe=permission_probe,
        transport_factory=transport_factory,
        session_log=session_log,
        assembler=TranscriptAssembler(greeting_text=controller_config.greeting_text),
        config=controller_config,
    )
