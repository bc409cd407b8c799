"""Domain models shared by the session controller and the session log.

Messages and session records are pydantic v2 models so they can be
validated on the way in and dumped straight into store rows.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sender(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    AVATAR = "avatar"

    @classmethod
    def normalize(cls, value: "str | Sender") -> "Sender":
        """Map a raw sender label onto a Sender. ``"ai"`` is an alias of avatar."""
        if isinstance(value, Sender):
            return value
        if value == "ai":
            return cls.AVATAR
        return cls(value)


class Mode(str, Enum):
    """Interaction mode of a live session."""

    TEXT = "text_mode"
    VOICE = "voice_mode"


class SessionStatus(str, Enum):
    """Status of a logged session."""

    ACTIVE = "active"
    COMPLETED = "completed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One transcript entry. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    sender: Sender
    session_id: Optional[str] = None

    @field_validator("sender", mode="before")
    @classmethod
    def _normalize_sender(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Sender.normalize(value)
        return value

    def to_row(self, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        """Row shape of the ``messages`` table."""
        return {
            "session_id": self.session_id,
            "sender": self.sender.value,
            "message": self.text,
            "timestamp": (timestamp or utc_now()).isoformat(),
        }


class SessionRecord(BaseModel):
    """A logical conversation tracked by the session log.

    ``last_activity`` is a clock reading in seconds and never leaves the
    process; the other fields mirror the ``sessions`` table.
    """

    session_id: str
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.ACTIVE
    last_activity: float = 0.0

    def to_row(self) -> Dict[str, Any]:
        """Row shape of the ``sessions`` table."""
        row = {
            "session_id": self.session_id,
            "start_time": self.start_time.isoformat(),
            "status": self.status.value,
        }
        if self.end_time is not None:
            row["end_time"] = self.end_time.isoformat()
        return row
