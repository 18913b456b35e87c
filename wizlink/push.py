"""Push notifications from WiZ bulbs.

After a bulb receives a ``registration`` message with ``register: true`` it
sends every state change to UDP 38900 of the registering host:

  {"method": "syncPilot", "params": {"mac": "a8bb50...", "state": true, ...}}
  {"method": "firstBeat", "params": {"mac": "a8bb50...", ...}}   after boot

PushManager owns the listening socket and one background receive loop.
syncPilot messages go to the callback subscribed for the sender's MAC,
firstBeat messages go to the single discovery callback.

The loop only holds a reference to the shared _PushState, never to the
manager, so a manager that is dropped without stop() is still collected;
its __del__ clears the running flag and the loop exits on its next poll.
"""

import asyncio
import copy
import inspect
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional

from .discovery import DiscoveredBulb
from .errors import NotStartedError, ProtocolDecodeError, TransportError
from .history import MessageHistory, MessageType
from .protocol import (
    COMMAND_PORT,
    LIVENESS_PROBE,
    METHOD_FIRST_BEAT,
    METHOD_SYNC_PILOT,
    PUSH_PORT,
    as_endpoint,
    build_registration,
    decode_message,
    encode_message,
    generate_session_mac,
    is_ipv4_address,
    message_method,
    params_mac,
)
from .registry import DiscoveryCallback, StateCallback, SubscriptionRegistry
from .runtime import DEFAULT_RUNTIME, DatagramSocket, Runtime

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
REGISTER_TIMEOUT = 2.0
# Upper bound for one awaitable callback; stop() waits at most this long
# plus one poll interval
CALLBACK_TIMEOUT = 5.0


@dataclass
class PushDiagnostics:
    running: bool
    subscription_count: int
    time_since_last_push: Optional[float]
    last_error: Optional[str]

    def as_dict(self) -> dict:
        return asdict(self)


class _PushState:
    """Everything the receive loop needs, shared with the owning manager."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        history: Optional[MessageHistory],
        clock: Callable[[], float],
    ):
        self.running: bool = False
        self.registry = registry
        self.history = history
        self.clock = clock
        self.last_push: Optional[float] = None
        self.last_error: Optional[str] = None

    def record_error(self, text: str) -> None:
        self.last_error = text
        if self.history is not None:
            self.history.record_error(text)

    def handle_datagram(self, data: bytes, addr: tuple) -> Optional[Awaitable[Any]]:
        """Classify one inbound datagram and invoke the matching callback.

        Returns the callback's awaitable when it was a coroutine function,
        so the loop can finish it before taking the next datagram.
        """
        self.last_push = self.clock()

        if data == LIVENESS_PROBE:
            return None

        try:
            message = decode_message(data)
        except ProtocolDecodeError:
            return None

        method = message_method(message)
        mac = params_mac(message)
        if not is_ipv4_address(addr):
            return None

        if method == METHOD_SYNC_PILOT and mac:
            callback = self.registry.get(mac)
            if self.history is not None:
                self.history.record(MessageType.PUSH, message)
            if callback is None:
                return None
            return _pending(callback(mac, message["params"]))

        if method == METHOD_FIRST_BEAT and mac:
            callback = self.registry.discovery_callback()
            if self.history is not None:
                self.history.record(MessageType.PUSH, message)
            if callback is None:
                return None
            logger.info("firstBeat from %s (MAC=%s)", addr[0], mac)
            return _pending(callback(DiscoveredBulb(ip=addr[0], mac=mac)))

        logger.debug("Unknown push method %r from %s", method, addr[0])
        return None


def _pending(result: Any) -> Optional[Awaitable[Any]]:
    return result if inspect.isawaitable(result) else None


async def _receive_loop(
    state: _PushState,
    sock: DatagramSocket,
    poll_interval: float,
    callback_timeout: float,
) -> None:
    """Receive until state.running is cleared. Never raises."""
    try:
        while state.running:
            try:
                data, addr = await sock.recv(poll_interval)
            except asyncio.TimeoutError:
                continue
            except OSError as e:
                state.record_error(f"push socket error: {e}")
                logger.error("Push socket error: %s", e)
                continue

            try:
                pending = state.handle_datagram(data, addr)
                if pending is not None:
                    await asyncio.wait_for(pending, callback_timeout)
            except asyncio.TimeoutError:
                state.record_error(f"push callback timed out after {callback_timeout}s")
                logger.warning("Push callback for datagram from %s timed out", addr[0])
            except Exception as e:
                state.record_error(f"push callback error: {type(e).__name__}: {e}")
                logger.exception("Push callback failed for datagram from %s", addr[0])
    finally:
        sock.close()
        logger.info("Push listener stopped")


class PushManager:
    """Listens for bulb push messages and routes them to subscribers."""

    def __init__(
        self,
        runtime: Optional[Runtime] = None,
        history: Optional[MessageHistory] = None,
        listen_port: int = PUSH_PORT,
        poll_interval: float = POLL_INTERVAL,
        bind_ip: str = "0.0.0.0",
        command_port: int = COMMAND_PORT,
        callback_timeout: float = CALLBACK_TIMEOUT,
    ):
        self._runtime = runtime or DEFAULT_RUNTIME
        self._history = history
        self._listen_port = listen_port
        self._poll_interval = poll_interval
        self._bind_ip = bind_ip
        self._command_port = command_port
        self._callback_timeout = callback_timeout

        self._registry = SubscriptionRegistry()
        self._state = _PushState(self._registry, history, self._runtime.monotonic)
        self._task: Optional[asyncio.Task] = None
        self._register_msg: Optional[dict] = None
        self._listen_address: Optional[tuple] = None
        # Serializes start/stop so a concurrent pair never leaves two loops
        # or a loop that outlives stop()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def listen_address(self) -> Optional[tuple]:
        """Address the push socket is bound to, once started."""
        return self._listen_address

    @property
    def registration_message(self) -> Optional[dict]:
        if self._register_msg is None:
            return None
        return copy.deepcopy(self._register_msg)

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(self, mac: str, callback: StateCallback) -> None:
        """Route syncPilot messages from ``mac`` to ``callback(mac, params)``.

        The callback runs on the receive loop. If it returns an awaitable,
        the loop awaits it for at most ``callback_timeout`` seconds before
        cancelling it and recording the timeout as ``last_error``.
        """
        self._registry.subscribe(mac, callback)

    def unsubscribe(self, mac: str) -> None:
        self._registry.unsubscribe(mac)

    def set_discovery_callback(self, callback: Optional[DiscoveryCallback]) -> None:
        """Call ``callback(DiscoveredBulb)`` for every firstBeat message."""
        self._registry.set_discovery_callback(callback)

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, local_ip: str) -> None:
        """Bind the push port and start the receive loop.

        ``local_ip`` is the address bulbs should push to; it is embedded in
        the registration message sent by register_bulb().
        """
        async with self._lifecycle_lock:
            if self._state.running:
                return

            try:
                sock = await self._runtime.open_socket(local_addr=(self._bind_ip, self._listen_port))
            except OSError as e:
                raise TransportError("bind", e) from e

            self._listen_address = sock.local_address
            self._register_msg = build_registration(local_ip, generate_session_mac())
            self._state.running = True
            self._task = self._runtime.spawn(
                _receive_loop(self._state, sock, self._poll_interval, self._callback_timeout),
                name="wizlink-push",
            )
        logger.info(
            "Push listener on UDP %s:%d (phoneMac=%s)",
            self._bind_ip, self._listen_port, self._register_msg["params"]["phoneMac"],
        )

    async def stop(self) -> None:
        """Stop the receive loop and wait for it to exit. Safe to call twice.

        A stop() issued while start() is still binding waits for it, then
        stops the loop it launched.
        """
        async with self._lifecycle_lock:
            self._state.running = False
            task, self._task = self._task, None
            if task is not None:
                await task

    async def __aenter__(self) -> "PushManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def __del__(self):
        # The loop can't be awaited here; clearing the flag is enough for it to exit.
        state = getattr(self, "_state", None)
        if state is not None:
            state.running = False

    # ── Registration ─────────────────────────────────────────────────────

    async def register_bulb(self, ip: Any, port: Optional[int] = None) -> None:
        """Ask one bulb to push its state changes to this host."""
        message = self._register_msg
        if message is None:
            raise NotStartedError()

        endpoint = as_endpoint(ip, port or self._command_port)
        payload = encode_message(message)

        async def _send() -> None:
            sock = await self._runtime.open_socket(remote_addr=(endpoint.ip, endpoint.port))
            try:
                sock.send(payload)
            finally:
                sock.close()

        try:
            await asyncio.wait_for(_send(), REGISTER_TIMEOUT)
        except (asyncio.TimeoutError, OSError) as e:
            raise TransportError("send", e) from e

        if self._history is not None:
            self._history.record(MessageType.SEND, message)
        logger.info("Registered for push updates with %s", endpoint)

    # ── Diagnostics ──────────────────────────────────────────────────────

    def diagnostics(self) -> PushDiagnostics:
        last_push = self._state.last_push
        return PushDiagnostics(
            running=self._state.running,
            subscription_count=len(self._registry),
            time_since_last_push=(
                None if last_push is None else self._runtime.monotonic() - last_push
            ),
            last_error=self._state.last_error,
        )

    def _handle_datagram(self, data: bytes, addr: tuple) -> Optional[Awaitable[Any]]:
        return self._state.handle_datagram(data, addr)
