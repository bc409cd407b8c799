"""avatalk - Conversational session controller for streaming avatars.

Architecture:
- persistence: remote session store, session log
- orchestration: lifecycle FSM, transcript assembly
- perception: microphone permission probe
- transport: avatar transport facade, access token
- core: session controller
"""
from .config import Config, get_config
from .core import ControllerConfig, SessionController, create_controller
from .exceptions import (
    AvatalkError,
    PermissionDeniedError,
    StoreUnavailableError,
    TokenError,
    TransportError,
)
from .logging_config import logger, setup_logger
from .models import Message, Mode, Sender, SessionRecord, SessionStatus

__version__ = "1.0.0"

__all__ = [
    # Config
    "Config",
    "get_config",
    # Logging
    "logger",
    "setup_logger",
    # Models
    "Message",
    "Mode",
    "Sender",
    "SessionRecord",
    "SessionStatus",
    # Core
    "ControllerConfig",
    "SessionController",
    "create_controller",
    # Exceptions
    "AvatalkError",
    "PermissionDeniedError",
    "TransportError",
    "TokenError",
    "StoreUnavailableError",
]
