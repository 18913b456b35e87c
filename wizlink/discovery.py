"""WiZ bulb discovery via UDP broadcast.

Broadcasts one registration probe to port 38899 and collects replies
until the timeout elapses. Every bulb answers with its MAC in
``result.mac``; replies are deduplicated by MAC.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import ProtocolDecodeError, TransportError
from .protocol import (
    BROADCAST_ADDRESS,
    COMMAND_PORT,
    build_discovery_probe,
    decode_message,
    encode_message,
    is_ipv4_address,
    result_mac,
)
from .runtime import DEFAULT_RUNTIME, Runtime

logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 5.0
POLL_INTERVAL = 0.5


@dataclass(frozen=True)
class DiscoveredBulb:
    ip: str
    mac: str

    def to_light(self, name: Optional[str] = None):
        """Build a Light client for this bulb."""
        from .light import Light

        return Light(self.ip, name=name)


def parse_discovery_reply(data: bytes, addr: tuple) -> Optional[DiscoveredBulb]:
    """Turn one reply datagram into a DiscoveredBulb, or None if unusable."""
    try:
        message = decode_message(data)
    except ProtocolDecodeError:
        return None
    mac = result_mac(message)
    if mac is None or not is_ipv4_address(addr):
        return None
    return DiscoveredBulb(ip=addr[0], mac=mac)


async def discover_bulbs(
    timeout: float = DISCOVERY_TIMEOUT,
    *,
    poll_interval: float = POLL_INTERVAL,
    runtime: Optional[Runtime] = None,
    broadcast_address: str = BROADCAST_ADDRESS,
    port: int = COMMAND_PORT,
) -> List[DiscoveredBulb]:
    """Broadcast the discovery probe and collect bulb replies.

    Best effort: the probe is sent once, malformed replies are skipped and
    an empty list means nobody answered. Only failing to set up the socket
    raises (TransportError).
    """
    runtime = runtime or DEFAULT_RUNTIME
    try:
        sock = await runtime.open_socket(local_addr=("0.0.0.0", 0), broadcast=True)
    except OSError as e:
        raise TransportError("bind", e) from e

    found: Dict[str, DiscoveredBulb] = {}
    try:
        logger.info("Broadcasting WiZ discovery on port %d...", port)
        try:
            sock.send(encode_message(build_discovery_probe()), (broadcast_address, port))
        except OSError as e:
            raise TransportError("send", e) from e

        deadline = runtime.monotonic() + timeout
        while True:
            remaining = deadline - runtime.monotonic()
            if remaining <= 0:
                break
            try:
                data, addr = await sock.recv(min(poll_interval, remaining))
            except asyncio.TimeoutError:
                continue
            except OSError as e:
                logger.debug("Discovery receive failed, ending scan: %s", e)
                break

            bulb = parse_discovery_reply(data, addr)
            if bulb is None:
                continue
            if bulb.mac not in found:
                logger.debug("Discovered: %s  MAC=%s", bulb.ip, bulb.mac)
            # Last reply for a MAC wins
            found[bulb.mac] = bulb
    finally:
        sock.close()

    return list(found.values())
