"""Error types raised by the WiZ UDP client.

Every error derives from WizError so callers can catch the whole family.
The command transport sets ``attempts`` on the error it finally raises.
"""

import asyncio
from typing import Optional


_TIMEOUTS = (TimeoutError, asyncio.TimeoutError)


class WizError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.attempts: Optional[int] = None

    def __str__(self) -> str:
        text = super().__str__()
        if self.attempts:
            return f"{text} (after {self.attempts} attempts)"
        return text


class SerializationError(WizError):
    """A command could not be encoded as JSON."""


class TransportError(WizError):
    """A socket operation failed (bind, connect, send, receive or timeout)."""

    def __init__(self, action: str, cause: Optional[BaseException] = None):
        self.action = action
        self.cause = cause
        if isinstance(cause, _TIMEOUTS) or cause is None:
            detail = "timed out"
        else:
            detail = str(cause) or type(cause).__name__
        super().__init__(f"socket {action} error: {detail}")

    @property
    def timed_out(self) -> bool:
        return self.cause is None or isinstance(self.cause, _TIMEOUTS)


class ProtocolDecodeError(WizError):
    """A datagram was not valid UTF-8 JSON."""


class EmptyCommandError(WizError):
    """A command had no method or no attributes to apply."""

    def __init__(self, message: str = "invalid payload; no attributes set"):
        super().__init__(message)


class NotStartedError(WizError):
    """Bulb registration was attempted before the push listener was started."""

    def __init__(self, message: str = "push manager has not been started"):
        super().__init__(message)


class RoomError(WizError):
    """A room operation referred to a light it cannot act on."""


class LightNotFoundError(RoomError):
    def __init__(self, room: str, light_id: object):
        self.room = room
        self.light_id = light_id
        super().__init__(f"light {light_id} not found in room {room!r}")


class DuplicateLightError(RoomError):
    def __init__(self, ip: str):
        self.ip = ip
        super().__init__(f"invalid ip {ip}: already known")


class NoChangeError(RoomError):
    def __init__(self, room: str, light_id: object):
        self.room = room
        self.light_id = light_id
        super().__init__(f"light {light_id} in room {room!r} is unchanged")
