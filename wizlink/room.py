"""Named groups of lights with batch status queries.

A Room keys its lights by a generated UUID so a light can be renamed or
moved to a new address without losing its identity. No two lights in a
room share an IP address.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from .errors import DuplicateLightError, LightNotFoundError, NoChangeError
from .light import Light

logger = logging.getLogger(__name__)


class Room:
    def __init__(self, name: str):
        self.name = name
        self._lights: Dict[uuid.UUID, Light] = {}

    def __repr__(self) -> str:
        return f"Room(name={self.name!r}, lights={len(self._lights)})"

    def __len__(self) -> int:
        return len(self._lights)

    def new_light(self, light: Light) -> uuid.UUID:
        """Add a light and return its id. Raises DuplicateLightError for a known IP."""
        self._check_ip(light)
        light_id = uuid.uuid4()
        self._lights[light_id] = light
        logger.debug("Room %r: added %s as %s", self.name, light.ip, light_id)
        return light_id

    def delete_light(self, light_id: uuid.UUID) -> None:
        if self._lights.pop(light_id, None) is None:
            raise LightNotFoundError(self.name, light_id)

    def update_light(self, light_id: uuid.UUID, light: Light) -> None:
        """Copy name and address from ``light`` onto the stored one.

        Raises LightNotFoundError for an unknown id, DuplicateLightError if
        the new address belongs to another light and NoChangeError when
        nothing differs.
        """
        existing = self._lights.get(light_id)
        if existing is None:
            raise LightNotFoundError(self.name, light_id)
        self._check_ip(light, exclude=light_id)
        if not existing.update(light):
            raise NoChangeError(self.name, light_id)

    def list(self) -> List[uuid.UUID]:
        return list(self._lights)

    def read(self, light_id: uuid.UUID) -> Optional[Light]:
        return self._lights.get(light_id)

    def lights(self) -> List[Light]:
        return list(self._lights.values())

    async def get_status(self) -> Dict[str, dict]:
        """Query every light concurrently; returns ``{ip: getPilot result}``.

        All queries run to completion. If any failed, the first failure in
        room order is raised.
        """
        lights = self.lights()
        results = await asyncio.gather(
            *(light.get_status() for light in lights),
            return_exceptions=True,
        )
        statuses: Dict[str, dict] = {}
        for light, result in zip(lights, results):
            if isinstance(result, BaseException):
                raise result
            statuses[light.ip] = result
        return statuses

    def _check_ip(self, light: Light, exclude: Optional[uuid.UUID] = None) -> None:
        for light_id, known in self._lights.items():
            if light_id != exclude and known.ip == light.ip:
                raise DuplicateLightError(light.ip)
