"""Core module (Session Controller)."""
from .controller import ControllerConfig, SessionController, create_controller

__all__ = [
    "ControllerConfig",
    "SessionController",
    "create_controller",
]
