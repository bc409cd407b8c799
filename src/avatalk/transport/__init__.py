"""Transport layer modules (avatar facade, access token)."""
from .base import (
    BaseAvatarTransport,
    MockTransport,
    StartOptions,
    TransportEvent,
    TransportEventPayload,
    VoiceChatOptions,
    create_transport,
)
from .token import BaseTokenProvider, HttpTokenProvider, StaticTokenProvider

__all__ = [
    "BaseAvatarTransport",
    "MockTransport",
    "StartOptions",
    "TransportEvent",
    "TransportEventPayload",
    "VoiceChatOptions",
    "create_transport",
    "BaseTokenProvider",
    "HttpTokenProvider",
    "StaticTokenProvider",
]
