"""asyncio-backed concurrency primitives shared by every component.

Transport, discovery and the push listener only ever touch the network,
the clock and the scheduler through a Runtime. Tests substitute a fake one
to script datagrams and to observe sleeps without waiting.
"""

import asyncio
import time
from typing import Any, Awaitable, Optional, Tuple

Address = Tuple[str, int]


class _QueueProtocol(asyncio.DatagramProtocol):
    """Feeds received datagrams and socket errors into a queue."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)


class DatagramSocket:
    """One UDP socket with an awaitable, timeout-bounded receive."""

    def __init__(self, transport: asyncio.DatagramTransport, protocol: _QueueProtocol):
        self._transport = transport
        self._protocol = protocol

    @property
    def local_address(self) -> Optional[Address]:
        return self._transport.get_extra_info("sockname")

    def send(self, data: bytes, addr: Optional[Address] = None) -> None:
        """Queue one datagram. ``addr`` must be omitted on connected sockets."""
        if self._transport.is_closing():
            raise OSError("socket is closed")
        if addr is None:
            self._transport.sendto(data)
        else:
            self._transport.sendto(data, addr)

    async def recv(self, timeout: float) -> Tuple[bytes, tuple]:
        """Wait for one datagram.

        Raises asyncio.TimeoutError when nothing arrives in time, or the
        OSError the kernel reported for this socket.
        """
        item = await asyncio.wait_for(self._protocol.queue.get(), timeout)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self._transport.close()


class Runtime:
    """Socket, timer and task factory on top of the running asyncio loop."""

    async def open_socket(
        self,
        local_addr: Optional[Address] = None,
        remote_addr: Optional[Address] = None,
        broadcast: bool = False,
    ) -> DatagramSocket:
        """Create a UDP socket. Raises OSError if bind or connect fails."""
        loop = asyncio.get_running_loop()
        kwargs: dict = {}
        if local_addr is not None:
            kwargs["local_addr"] = local_addr
        if remote_addr is not None:
            kwargs["remote_addr"] = remote_addr
        if broadcast:
            kwargs["allow_broadcast"] = True
        transport, protocol = await loop.create_datagram_endpoint(
            _QueueProtocol, **kwargs,
        )
        return DatagramSocket(transport, protocol)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def monotonic(self) -> float:
        return time.monotonic()

    def spawn(self, coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro, name=name)


DEFAULT_RUNTIME = Runtime()
