"""WiZ JSON-over-UDP message construction and parsing.

Pure functions with no I/O and no state. Every datagram is a single UTF-8 JSON
object with no framing or length prefix:

  request   {"method": "<name>", "params": {...}}      params optional
  response  {"method": "<name>", "env": "pro", "result": {...}}
  push      {"method": "syncPilot" | "firstBeat", "params": {"mac": ..., ...}}

Bulbs listen for commands on UDP 38899. After registration they push
unsolicited state updates to the registering host on UDP 38900.
"""

import ipaddress
import json
import secrets
from typing import Any, NamedTuple, Optional

from .errors import EmptyCommandError, ProtocolDecodeError, SerializationError

COMMAND_PORT = 38899
PUSH_PORT = 38900
BROADCAST_ADDRESS = "255.255.255.255"

# Command vocabulary
METHOD_GET_PILOT = "getPilot"
METHOD_SET_PILOT = "setPilot"
METHOD_SET_STATE = "setState"
METHOD_REBOOT = "reboot"
METHOD_RESET = "reset"
METHOD_GET_POWER = "getPower"
METHOD_GET_SYSTEM_CONFIG = "getSystemConfig"
METHOD_GET_USER_CONFIG = "getUserConfig"
METHOD_GET_MODEL_CONFIG = "getModelConfig"
METHOD_REGISTRATION = "registration"

# Fan fixture values carried in setPilot / getPilot
FAN_OFF = 0
FAN_ON = 1
FAN_MODE_NORMAL = 1
FAN_MODE_BREEZE = 2
FAN_FORWARD = 0
FAN_REVERSE = 1

# Push methods (bulb -> host)
METHOD_SYNC_PILOT = "syncPilot"
METHOD_FIRST_BEAT = "firstBeat"

# Some firmware probes the push port with this literal payload
LIVENESS_PROBE = b"test"

# Fixed identity used by the discovery probe
_PROBE_PHONE_MAC = "AAAAAAAAAAAA"
_PROBE_PHONE_IP = "1.2.3.4"


class Endpoint(NamedTuple):
    """IPv4 address and UDP port of a bulb."""

    ip: str
    port: int = COMMAND_PORT

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


def as_endpoint(target: Any, port: int = COMMAND_PORT) -> Endpoint:
    """Accept an Endpoint, an (ip, port) tuple or a bare IP string."""
    if isinstance(target, Endpoint):
        return target
    if isinstance(target, tuple):
        return Endpoint(str(target[0]), int(target[1]))
    return Endpoint(str(target), port)


def normalize_mac(mac: str) -> str:
    """Uppercase a hardware address and drop ':'/'-' separators."""
    return mac.strip().replace(":", "").replace("-", "").upper()


def generate_session_mac() -> str:
    """Random 12-hex identifier used as ``phoneMac`` for one push session.

    The locally-administered bit is set and the multicast bit cleared, so
    the value can never equal a vendor-assigned hardware address.
    """
    raw = bytearray(secrets.token_bytes(6))
    raw[0] = (raw[0] | 0x02) & 0xFE
    return raw.hex().upper()


def is_ipv4_address(addr: Any) -> bool:
    """True if a socket address tuple comes from an IPv4 peer."""
    if not isinstance(addr, tuple) or len(addr) != 2:
        return False
    try:
        return ipaddress.ip_address(addr[0]).version == 4
    except ValueError:
        return False


# ── Codec ────────────────────────────────────────────────────────────────


def encode_message(message: dict) -> bytes:
    """Serialize a command envelope to compact UTF-8 JSON."""
    try:
        return json.dumps(message, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to dump json: {e}") from e


def decode_message(data: bytes) -> Any:
    """Decode one datagram. Raises ProtocolDecodeError on bad UTF-8 or JSON."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolDecodeError(f"utf8 decoding error: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"failed to load json: {e}") from e


def message_method(message: Any) -> Optional[str]:
    if isinstance(message, dict):
        method = message.get("method")
        if isinstance(method, str):
            return method
    return None


def _nested_mac(message: Any, key: str) -> Optional[str]:
    if not isinstance(message, dict):
        return None
    section = message.get(key)
    if not isinstance(section, dict):
        return None
    mac = section.get("mac")
    if not isinstance(mac, str) or not mac:
        return None
    return normalize_mac(mac)


def result_mac(message: Any) -> Optional[str]:
    """``result.mac`` of a discovery reply, normalized."""
    return _nested_mac(message, "result")


def params_mac(message: Any) -> Optional[str]:
    """``params.mac`` of a push message, normalized."""
    return _nested_mac(message, "params")


# ── Envelope builders ────────────────────────────────────────────────────


def build_command(method: str, params: Optional[dict] = None) -> dict:
    if not method:
        raise EmptyCommandError("command has no method")
    message: dict = {"method": method}
    if params is not None:
        message["params"] = params
    return message


def build_get_pilot() -> dict:
    return build_command(METHOD_GET_PILOT)


def build_set_pilot(params: dict) -> dict:
    """setPilot with already-validated lighting attributes.

    An empty attribute set would be a no-op on the bulb, so it is refused.
    """
    if not params:
        raise EmptyCommandError()
    return build_command(METHOD_SET_PILOT, dict(params))


def build_set_state(on: bool) -> dict:
    return build_command(METHOD_SET_STATE, {"state": bool(on)})


def build_fan_params(
    state: Optional[bool] = None,
    mode: Optional[int] = None,
    speed: Optional[int] = None,
    direction: Optional[int] = None,
) -> dict:
    """setPilot attributes for a fan fixture; omitted settings are left out."""
    params: dict = {}
    if state is not None:
        params["fanState"] = FAN_ON if state else FAN_OFF
    if mode is not None:
        params["fanMode"] = int(mode)
    if speed is not None:
        params["fanSpeed"] = int(speed)
    if direction is not None:
        params["fanRevrs"] = int(direction)
    return params


def build_discovery_probe() -> dict:
    """Registration probe broadcast by the discovery scanner.

    ``register`` is false so bulbs answer without starting to push.
    """
    return {
        "method": METHOD_REGISTRATION,
        "params": {
            "phoneMac": _PROBE_PHONE_MAC,
            "register": False,
            "phoneIp": _PROBE_PHONE_IP,
            "id": "1",
        },
    }


def build_registration(local_ip: str, phone_mac: str) -> dict:
    """Registration that asks a bulb to push state changes to ``local_ip``."""
    return {
        "method": METHOD_REGISTRATION,
        "params": {
            "phoneIp": local_ip,
            "register": True,
            "phoneMac": phone_mac,
        },
    }
