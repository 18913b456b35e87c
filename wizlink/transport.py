"""Retrying UDP command transport.

Bulbs are cheap ESP-based devices on lossy Wi-Fi and drop datagrams
regularly. Each command gets a short, fixed retry ladder:

  attempt 1 ── 1.0s timeout ── sleep 0.75s
  attempt 2 ── 1.0s timeout ── sleep 1.5s
  attempt 3 ── 1.0s timeout ── sleep 3.0s
  attempt 4 ── 1.0s timeout ── give up, raise the last error

Every attempt uses a fresh socket connected to the bulb, so a reply can
only come from that endpoint and no OS-level state leaks from a failed
attempt into the next one.
"""

import asyncio
import logging
from typing import Any, Optional

from .errors import EmptyCommandError, ProtocolDecodeError, TransportError, WizError
from .history import MessageHistory, MessageType
from .protocol import (
    Endpoint,
    as_endpoint,
    decode_message,
    encode_message,
    message_method,
)
from .runtime import DEFAULT_RUNTIME, DatagramSocket, Runtime

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 4
COMMAND_TIMEOUT = 1.0
RETRY_DELAYS = (0.75, 1.5, 3.0)


def retry_delay(attempt: int) -> float:
    """Backoff after a failed 0-indexed attempt."""
    return RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]


class CommandTransport:
    """Sends one command and returns the bulb's decoded reply."""

    def __init__(
        self,
        runtime: Optional[Runtime] = None,
        history: Optional[MessageHistory] = None,
    ):
        self._runtime = runtime or DEFAULT_RUNTIME
        self._history = history

    @property
    def history(self) -> Optional[MessageHistory]:
        return self._history

    async def send_command(self, endpoint: Any, command: dict) -> Any:
        """Send ``command`` to ``endpoint`` with retries.

        Raises EmptyCommandError or SerializationError immediately. Socket
        and decode failures are retried; after the last attempt the final
        TransportError or ProtocolDecodeError is raised.
        """
        endpoint = as_endpoint(endpoint)
        method = message_method(command)
        if method is None:
            raise EmptyCommandError("command has no method")
        payload = encode_message(command)

        if self._history is not None:
            self._history.record(MessageType.SEND, command)

        last_error: Optional[WizError] = None
        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._attempt(endpoint, payload)
            except (TransportError, ProtocolDecodeError) as e:
                last_error = e
                if self._history is not None:
                    self._history.record_error(str(e))
                logger.debug(
                    "%s to %s: attempt %d/%d failed: %s",
                    method, endpoint, attempt + 1, MAX_ATTEMPTS, e,
                )
                if attempt < MAX_ATTEMPTS - 1:
                    await self._runtime.sleep(retry_delay(attempt))
                continue

            if self._history is not None:
                self._history.record(MessageType.RECEIVE, response)
            if attempt > 0:
                logger.debug("%s to %s succeeded on attempt %d", method, endpoint, attempt + 1)
            return response

        last_error.attempts = MAX_ATTEMPTS
        logger.warning("%s to %s failed: %s", method, endpoint, last_error)
        raise last_error

    async def _attempt(self, endpoint: Endpoint, payload: bytes) -> Any:
        sock: Optional[DatagramSocket] = None
        try:
            try:
                sock = await self._runtime.open_socket(remote_addr=(endpoint.ip, endpoint.port))
            except OSError as e:
                raise TransportError("connect", e) from e

            try:
                sock.send(payload)
            except OSError as e:
                raise TransportError("send", e) from e

            try:
                data, _ = await sock.recv(COMMAND_TIMEOUT)
            except (asyncio.TimeoutError, OSError) as e:
                raise TransportError("receive", e) from e

            return decode_message(data)
        finally:
            if sock is not None:
                sock.close()


async def send_command(
    endpoint: Any,
    command: dict,
    *,
    runtime: Optional[Runtime] = None,
    history: Optional[MessageHistory] = None,
) -> Any:
    """One-shot helper around CommandTransport.send_command()."""
    return await CommandTransport(runtime=runtime, history=history).send_command(
        endpoint, command,
    )
