"""HTTP JSON view of push-listener state.

Serves what the push listener has seen so dashboards and scripts can poll
it without speaking UDP:

  GET /json/diagnostics   listener diagnostics + message history summary
  GET /json/state         last syncPilot params per tracked bulb
  GET /json/state/{mac}   one bulb (404 if never seen / not tracked)
  GET /json/bulbs         bulbs that announced themselves via firstBeat
"""

import logging
import time
from typing import Dict, Optional

from aiohttp import web

from .discovery import DiscoveredBulb
from .history import MessageHistory
from .protocol import normalize_mac
from .push import PushManager

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8038


class PushMonitor:
    def __init__(
        self,
        push_manager: PushManager,
        history: Optional[MessageHistory] = None,
        http_port: int = DEFAULT_HTTP_PORT,
        bind_ip: str = "0.0.0.0",
    ):
        self._push = push_manager
        self._history = history
        self._http_port = http_port
        self._bind_ip = bind_ip

        self._states: Dict[str, dict] = {}
        self._updated: Dict[str, float] = {}
        self._tracked: set = set()
        self._bulbs: Dict[str, DiscoveredBulb] = {}

        self._runner: Optional[web.AppRunner] = None

    # ── Push callbacks ───────────────────────────────────────────────────

    def track(self, mac: str) -> None:
        """Subscribe to a bulb and remember its latest pushed state."""
        mac = normalize_mac(mac)
        self._tracked.add(mac)
        self._push.subscribe(mac, self._on_state)

    def untrack(self, mac: str) -> None:
        mac = normalize_mac(mac)
        self._tracked.discard(mac)
        self._push.unsubscribe(mac)

    def watch_first_beats(self) -> None:
        """Take over the discovery callback and track every announced bulb."""
        self._push.set_discovery_callback(self._on_first_beat)

    def _on_state(self, mac: str, params: dict) -> None:
        self._states[mac] = dict(params)
        self._updated[mac] = time.time()

    def _on_first_beat(self, bulb: DiscoveredBulb) -> None:
        if bulb.mac not in self._bulbs:
            logger.info("New bulb announced: %s (MAC=%s)", bulb.ip, bulb.mac)
        self._bulbs[bulb.mac] = bulb
        if bulb.mac not in self._tracked:
            self.track(bulb.mac)

    # ── HTTP Route Handlers ──────────────────────────────────────────────

    async def handle_diagnostics(self, request: web.Request) -> web.Response:
        body = {"push": self._push.diagnostics().as_dict()}
        if self._history is not None:
            body["history"] = self._history.summary().as_dict()
        return web.json_response(body)

    async def handle_states(self, request: web.Request) -> web.Response:
        return web.json_response({
            mac: self._state_entry(mac) for mac in sorted(self._tracked)
        })

    async def handle_state(self, request: web.Request) -> web.Response:
        mac = normalize_mac(request.match_info["mac"])
        if mac not in self._tracked and mac not in self._states:
            return web.json_response({"error": f"unknown bulb {mac}"}, status=404)
        return web.json_response(self._state_entry(mac))

    async def handle_bulbs(self, request: web.Request) -> web.Response:
        return web.json_response([
            {"ip": bulb.ip, "mac": bulb.mac} for bulb in self._bulbs.values()
        ])

    def _state_entry(self, mac: str) -> dict:
        return {
            "mac": mac,
            "state": self._states.get(mac),
            "updated": self._updated.get(mac),
        }

    def routes(self) -> list:
        return [
            web.get("/json/diagnostics", self.handle_diagnostics),
            web.get("/json/state", self.handle_states),
            web.get("/json/state/{mac}", self.handle_state),
            web.get("/json/bulbs", self.handle_bulbs),
        ]

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        app = web.Application()
        app.add_routes(self.routes())
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._bind_ip, self._http_port)
        await site.start()
        logger.info("Push monitor on http://%s:%d/json/diagnostics", self._bind_ip, self._http_port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Push monitor stopped")
