"""Durable logging of a conversation to the remote session store.

SessionLog tracks one logical conversation at a time. Liveness is checked
lazily: a session idle for longer than the timeout is closed the next time it
is touched and a replacement is opened transparently on the next append.

Every store failure is logged and turned into a False/None result; nothing
raised by the store escapes this module.
"""
import time
import uuid
from typing import Callable, Optional, Union

from ..config import StoreConfig
from ..exceptions import StoreUnavailableError
from ..logging_config import setup_logger
from ..models import Message, Sender, SessionRecord, SessionStatus, utc_now
from .store import BaseSessionStore

logger = setup_logger("avatalk.session_log")

DEFAULT_TIMEOUT_S = 5 * 60


class SessionLog:
    """Logs sessions and messages, one held session per instance."""

    def __init__(
        self,
        store: BaseSessionStore,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        clock: Callable[[], float] = time.time,
        store_config: Optional[StoreConfig] = None
    ):
        self.store = store
        self.timeout_s = timeout_s
        self.clock = clock
        store_config = store_config or StoreConfig()
        self.sessions_table = store_config.sessions_table
        self.messages_table = store_config.messages_table
        self._current: Optional[SessionRecord] = None

    @property
    def session_id(self) -> Optional[str]:
        """Identifier of the held session, if any."""
        return self._current.session_id if self._current else None

    async def open(self) -> Optional[str]:
        """Create a new active session and hold it."""
        session_id = str(uuid.uuid4())
        record = SessionRecord(session_id=session_id, last_activity=self.clock())
        logger.info(f"Creating new session: {session_id}")

        try:
            await self.store.insert(self.sessions_table, record.to_row())
        except StoreUnavailableError as e:
            logger.warning(f"Failed to create session: {e}")
            return None

        self._current = record
        logger.info(f"Session created: {session_id}")
        return session_id

    async def is_live(self, now: Optional[float] = None) -> bool:
        """Check whether the held session is still within the timeout window.

        A stale session is closed as a side effect.
        """
        if self._current is None:
            return False

        now = self.clock() if now is None else now
        inactive = now - self._current.last_activity
        if inactive > self.timeout_s:
            session_id = self._current.session_id
            logger.info(f"Session timed out: {session_id} (inactive {inactive:.1f}s)")
            await self.close(session_id)
            # Drop it even if the remote update failed
            if self._current is not None and self._current.session_id == session_id:
                self._current = None
            return False

        return True

    async def append(self, sender: Union[Sender, str], text: str) -> bool:
        """Log one message, opening a replacement session when needed.

        Writing the same (session, sender, text) twice stores a single row.
        """
        if not text or not text.strip():
            return False

        if not await self.is_live():
            if await self.open() is None:
                logger.warning("Failed to create new session for message")
                return False

        record = self._current
        message = Message(text=text, sender=sender, session_id=record.session_id)
        match = {
            "session_id": record.session_id,
            "sender": message.sender.value,
            "message": message.text,
        }

        try:
            existing = await self.store.select(self.messages_table, match)
            if existing:
                logger.debug(f"Duplicate message skipped in session {record.session_id}")
                record.last_activity = self.clock()
                return True

            await self.store.insert(self.messages_table, message.to_row())
        except StoreUnavailableError as e:
            logger.warning(f"Failed to log message: {e}")
            return False

        record.last_activity = self.clock()
        logger.debug(f"Message logged: session={record.session_id} sender={message.sender.value}")
        return True

    async def close(self, session_id: Optional[str]) -> bool:
        """Mark a session completed. Foreign or already closed ids are harmless."""
        if not session_id:
            logger.warning("No session id provided to close")
            return False

        logger.info(f"Ending session: {session_id}")
        try:
            await self.store.update(
                self.sessions_table,
                {
                    "status": SessionStatus.COMPLETED.value,
                    "end_time": utc_now().isoformat(),
                },
                {"session_id": session_id},
            )
        except StoreUnavailableError as e:
            logger.warning(f"Failed to end session {session_id}: {e}")
            return False

        if self._current is not None and self._current.session_id == session_id:
            self._current = None

        logger.info(f"Session ended: {session_id}")
        return True
