"""Custom exceptions for avatalk."""


class AvatalkError(Exception):
    """Base exception for avatalk."""
    pass


class PermissionDeniedError(AvatalkError):
    """Microphone permission probe failed."""
    pass


class TransportError(AvatalkError):
    """Avatar transport errors (connect, speak, mode switch)."""
    pass


class TokenError(TransportError):
    """Access token could not be obtained."""
    pass


class StoreUnavailableError(AvatalkError):
    """Remote session store errors."""
    pass
