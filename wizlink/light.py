"""Per-bulb client carrying the WiZ command vocabulary.

Light is a thin layer over CommandTransport: every operation is one
request of a fixed method to the bulb's command port. Lighting attributes
for setPilot are passed through as an already-validated dict, e.g.
``{"r": 255, "g": 0, "b": 0, "dimming": 80}``.
"""

import logging
from typing import Any, Optional

from .errors import WizError
from .history import MessageHistory
from .protocol import (
    COMMAND_PORT,
    FAN_ON,
    METHOD_GET_MODEL_CONFIG,
    METHOD_GET_POWER,
    METHOD_GET_SYSTEM_CONFIG,
    METHOD_GET_USER_CONFIG,
    METHOD_REBOOT,
    METHOD_RESET,
    Endpoint,
    build_command,
    build_fan_params,
    build_get_pilot,
    build_set_pilot,
    build_set_state,
    normalize_mac,
)
from .runtime import Runtime
from .transport import CommandTransport

logger = logging.getLogger(__name__)


def _result(response: Any) -> dict:
    if isinstance(response, dict) and isinstance(response.get("result"), dict):
        return response["result"]
    return {}


class Light:
    def __init__(
        self,
        ip: str,
        name: Optional[str] = None,
        port: int = COMMAND_PORT,
        runtime: Optional[Runtime] = None,
        history: Optional[MessageHistory] = None,
    ):
        self.endpoint = Endpoint(ip, port)
        self.name = name
        self.history = history if history is not None else MessageHistory()
        self._transport = CommandTransport(runtime=runtime, history=self.history)

    @property
    def ip(self) -> str:
        return self.endpoint.ip

    def __repr__(self) -> str:
        return f"Light(ip={self.ip!r}, name={self.name!r})"

    def update(self, other: "Light") -> bool:
        """Take over the name and address of ``other``. True if anything changed."""
        changed = False
        if self.name != other.name:
            self.name = other.name
            changed = True
        if self.endpoint != other.endpoint:
            self.endpoint = other.endpoint
            changed = True
        return changed

    async def _send(self, command: dict) -> Any:
        return await self._transport.send_command(self.endpoint, command)

    async def get_status(self) -> dict:
        """Live getPilot query; returns the ``result`` object."""
        return _result(await self._send(build_get_pilot()))

    async def set_pilot(self, params: dict) -> Any:
        """Apply lighting attributes. Raises EmptyCommandError for ``{}``."""
        response = await self._send(build_set_pilot(params))
        logger.debug("setPilot %s -> %s", self.endpoint, response)
        return response

    async def turn_on(self) -> Any:
        return await self._send(build_set_state(True))

    async def turn_off(self) -> Any:
        return await self._send(build_set_state(False))

    async def toggle(self) -> Any:
        """Query the current state and switch to the opposite."""
        status = await self.get_status()
        if status.get("state"):
            return await self.turn_off()
        return await self.turn_on()

    async def reboot(self) -> Any:
        return await self._send(build_command(METHOD_REBOOT))

    async def reset(self) -> Any:
        """Factory reset. The bulb forgets its Wi-Fi configuration."""
        return await self._send(build_command(METHOD_RESET))

    async def get_power(self) -> Optional[float]:
        """Current power draw in watts (bulbs report milliwatts); None if unsupported."""
        power = _result(await self._send(build_command(METHOD_GET_POWER))).get("power")
        if isinstance(power, (int, float)) and not isinstance(power, bool):
            return power / 1000
        return None

    async def get_system_config(self) -> dict:
        return _result(await self._send(build_command(METHOD_GET_SYSTEM_CONFIG)))

    async def get_user_config(self) -> dict:
        return _result(await self._send(build_command(METHOD_GET_USER_CONFIG)))

    async def get_model_config(self) -> dict:
        """Only answered by firmware >= 1.22."""
        return _result(await self._send(build_command(METHOD_GET_MODEL_CONFIG)))

    async def get_fan_speed_range(self) -> Optional[int]:
        """Highest fan speed a fan fixture accepts, or None for plain bulbs."""
        for query in (self.get_model_config, self.get_user_config):
            speed = (await query()).get("fanSpeed")
            if isinstance(speed, int) and not isinstance(speed, bool):
                return speed
        return None

    # ── Fan fixtures ─────────────────────────────────────────────────────

    async def fan_set_state(
        self,
        state: Optional[bool] = None,
        mode: Optional[int] = None,
        speed: Optional[int] = None,
        direction: Optional[int] = None,
    ) -> Any:
        """Apply any combination of fan settings in one setPilot.

        ``mode`` is FAN_MODE_NORMAL or FAN_MODE_BREEZE, ``direction``
        FAN_FORWARD or FAN_REVERSE and ``speed`` 1..get_fan_speed_range().
        Raises EmptyCommandError when nothing is given.
        """
        return await self.set_pilot(build_fan_params(state, mode, speed, direction))

    async def fan_turn_on(self, mode: Optional[int] = None, speed: Optional[int] = None) -> Any:
        return await self.fan_set_state(True, mode=mode, speed=speed)

    async def fan_turn_off(self) -> Any:
        return await self.fan_set_state(False)

    async def fan_toggle(self) -> Any:
        status = await self.get_status()
        if status.get("fanState") == FAN_ON:
            return await self.fan_turn_off()
        return await self.fan_turn_on()

    async def set_fan_speed(self, speed: int) -> Any:
        return await self.fan_set_state(speed=speed)

    async def set_fan_mode(self, mode: int) -> Any:
        return await self.fan_set_state(mode=mode)

    async def set_fan_direction(self, direction: int) -> Any:
        return await self.fan_set_state(direction=direction)

    async def get_mac(self) -> Optional[str]:
        mac = (await self.get_system_config()).get("mac")
        return normalize_mac(mac) if isinstance(mac, str) else None

    async def diagnostics(self) -> dict:
        """Everything useful for a bug report; unreachable parts are skipped."""
        diag: dict = {
            "ip": self.ip,
            "name": self.name,
        }
        for key, query in (
            ("status", self.get_status),
            ("system_config", self.get_system_config),
            ("user_config", self.get_user_config),
            ("model_config", self.get_model_config),
        ):
            try:
                diag[key] = await query()
            except WizError as e:
                logger.debug("diagnostics: %s for %s failed: %s", key, self.endpoint, e)
        diag["history"] = self.history.summary().as_dict()
        return diag
