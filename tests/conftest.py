"""Shared test doubles: a scriptable Runtime with a fake clock."""

import asyncio
import json
from collections import deque
from typing import Any, Callable, Deque, List, Optional

import pytest

BULB_ADDR = ("192.168.1.50", 38899)


def reply(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")


class FakeSocket:
    """Records sends; recv() pops scripted datagrams or times out instantly."""

    def __init__(self, runtime: "FakeRuntime", local_addr=None, remote_addr=None, broadcast=False):
        self.runtime = runtime
        self.local_addr = local_addr
        self.remote_addr = remote_addr
        self.broadcast = broadcast
        self.sent: List[tuple] = []
        self.incoming: Deque[Any] = deque()
        self.recv_timeouts: List[float] = []
        self.send_error: Optional[Exception] = None
        self.closed = False

    @property
    def local_address(self):
        if self.local_addr is None:
            return ("0.0.0.0", 50000)
        host, port = self.local_addr
        return (host, port or 50000)

    def inject(self, data: bytes, addr: tuple = BULB_ADDR) -> None:
        self.incoming.append((data, addr))

    def send(self, data: bytes, addr=None) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((data, addr))

    async def recv(self, timeout: float):
        self.recv_timeouts.append(timeout)
        await asyncio.sleep(0)
        if self.incoming:
            item = self.incoming.popleft()
            if isinstance(item, BaseException):
                raise item
            return item
        self.runtime.clock += timeout
        raise asyncio.TimeoutError()

    def close(self) -> None:
        self.closed = True


class FakeRuntime:
    def __init__(self):
        self.clock = 1000.0
        self.sleeps: List[float] = []
        self.sockets: List[FakeSocket] = []
        self.open_errors: Deque[Optional[Exception]] = deque()
        self.on_open: Optional[Callable[[FakeSocket], None]] = None

    async def open_socket(self, local_addr=None, remote_addr=None, broadcast=False):
        await asyncio.sleep(0)
        if self.open_errors:
            error = self.open_errors.popleft()
            if error is not None:
                raise error
        sock = FakeSocket(self, local_addr, remote_addr, broadcast)
        self.sockets.append(sock)
        if self.on_open is not None:
            self.on_open(sock)
        return sock

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.clock += seconds
        await asyncio.sleep(0)

    def monotonic(self) -> float:
        return self.clock

    def spawn(self, coro, name=None) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro, name=name)

    def script_attempts(self, outcomes: List[Any]) -> None:
        """One outcome per opened socket.

        None -> no reply (timeout), bytes -> that datagram from the bulb,
        an exception -> raised by recv().
        """
        pending = deque(outcomes)

        def _on_open(sock: FakeSocket) -> None:
            if not pending:
                return
            outcome = pending.popleft()
            if outcome is None:
                return
            if isinstance(outcome, BaseException):
                sock.incoming.append(outcome)
            else:
                sock.inject(outcome, sock.remote_addr or BULB_ADDR)

        self.on_open = _on_open


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()
