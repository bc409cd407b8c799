"""Transcript assembly from incremental transport fragments.

Avatar speech arrives as arbitrary text fragments. They are buffered and
segmented into sentences ending in ``.``, ``!`` or ``?``; only complete
sentences become messages. User fragments are accepted whole, subject to the
microphone gate and consecutive-duplicate suppression.
"""
import re
from typing import List, Optional, Sequence

from ..logging_config import setup_logger
from ..models import Message, Mode, Sender

logger = setup_logger("avatalk.transcript")

TERMINATORS = ".!?"


class TranscriptAssembler:
    """Turns raw transport fragments into transcript messages.

    The pending buffer only ever holds the suffix that has no terminator yet.
    """

    def __init__(self, greeting_text: Optional[str] = "Hoi"):
        self.greeting_text = greeting_text
        self._buffer = ""
        self._sentence_pattern = re.compile(f"[^{re.escape(TERMINATORS)}]*[{re.escape(TERMINATORS)}]+")

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete sentence."""
        return self._buffer

    def ingest_avatar_fragment(
        self,
        raw: str,
        session_id: Optional[str] = None
    ) -> List[Message]:
        """Buffer an avatar fragment and return the sentences it completes."""
        if not raw:
            return []

        self._buffer += raw

        # The greeting may arrive split over several fragments
        if self.greeting_text and self.greeting_text in self._buffer:
            logger.debug(f"Filtered greeting from avatar stream: {self.greeting_text!r}")
            self._buffer = self._buffer.replace(self.greeting_text, "")

        messages = []
        consumed = 0
        for match in self._sentence_pattern.finditer(self._buffer):
            consumed = match.end()
            sentence = match.group().strip()
            # A stray run of terminators carries no sentence
            if not sentence.strip(TERMINATORS).strip():
                continue
            messages.append(Message(text=sentence, sender=Sender.AVATAR, session_id=session_id))

        if consumed:
            self._buffer = self._buffer[consumed:]

        for message in messages:
            logger.debug(f"Avatar sentence complete: '{message.text[:50]}'")

        return messages

    def ingest_user_fragment(
        self,
        raw: str,
        mode: Mode,
        mic_open: bool,
        transcript: Sequence[Message] = (),
        session_id: Optional[str] = None
    ) -> Optional[Message]:
        """Accept a user fragment unless gated off or a consecutive duplicate."""
        text = (raw or "").strip()
        if not text:
            return None

        if mode == Mode.VOICE and not mic_open:
            logger.debug("Microphone gate closed, dropping user speech")
            return None

        if transcript:
            last = transcript[-1]
            if last.sender == Sender.USER and last.text == text:
                logger.debug(f"Duplicate user message suppressed: '{text[:50]}'")
                return None

        return Message(text=text, sender=Sender.USER, session_id=session_id)

    def reset(self) -> None:
        """Drop any buffered partial sentence."""
        self._buffer = ""
