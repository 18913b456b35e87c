"""Local UDP client for WiZ smart lights."""

from .discovery import DiscoveredBulb, discover_bulbs
from .errors import (
    DuplicateLightError,
    EmptyCommandError,
    LightNotFoundError,
    NoChangeError,
    NotStartedError,
    ProtocolDecodeError,
    RoomError,
    SerializationError,
    TransportError,
    WizError,
)
from .light import Light
from .push import PushManager
from .room import Room
from .transport import CommandTransport, send_command

__version__ = "0.1.0"

__all__ = [
    "CommandTransport",
    "DiscoveredBulb",
    "DuplicateLightError",
    "EmptyCommandError",
    "Light",
    "LightNotFoundError",
    "NoChangeError",
    "NotStartedError",
    "ProtocolDecodeError",
    "PushManager",
    "Room",
    "RoomError",
    "SerializationError",
    "TransportError",
    "WizError",
    "discover_bulbs",
    "send_command",
]
