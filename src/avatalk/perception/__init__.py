"""Perception layer modules (microphone permission)."""
from .microphone import BasePermissionProbe, SoundDeviceProbe, StaticProbe

__all__ = [
    "BasePermissionProbe",
    "SoundDeviceProbe",
    "StaticProbe",
]
