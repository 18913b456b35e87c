"""wizlink command-line entry point.

Usage:
    wizlink --discover
    wizlink --ip 192.168.1.40 status
    wizlink --ip 192.168.1.40 set '{"dimming": 50}'
    wizlink --ip 192.168.1.40 --ip 192.168.1.41 listen --http-port 8038
"""

import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config import ClientConfig
from .discovery import discover_bulbs
from .errors import WizError
from .history import MessageHistory
from .light import Light
from .monitor import PushMonitor
from .push import PushManager

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


async def run_discover(config: ClientConfig) -> None:
    print("Searching for WiZ lights on the network...")
    bulbs = await discover_bulbs(config.discover_timeout, poll_interval=config.poll_interval)
    if bulbs:
        print(f"\nFound {len(bulbs)} light(s):\n")
        print(f"  {'IP Address':<20} {'MAC Address'}")
        print(f"  {'-'*18:<20} {'-'*12}")
        for bulb in sorted(bulbs, key=lambda b: b.ip):
            print(f"  {bulb.ip:<20} {bulb.mac}")
        print(f"\nUse: wizlink --ip <IP> status")
    else:
        print("No WiZ lights found on the network.")
        print("Make sure the bulbs are powered on and on the same network.")


async def run_command(light: Light, command: str, args: List[str]) -> None:
    if command == "status":
        _print_json(await light.get_status())
    elif command == "on":
        await light.turn_on()
        print(f"{light.ip}: ON")
    elif command == "off":
        await light.turn_off()
        print(f"{light.ip}: OFF")
    elif command == "toggle":
        await light.toggle()
        print(f"{light.ip}: toggled")
    elif command == "set":
        if not args:
            raise WizError("'set' needs setPilot params as JSON, e.g. '{\"dimming\": 50}'")
        try:
            params = json.loads(args[0])
        except json.JSONDecodeError as e:
            raise WizError(f"invalid params JSON: {e}") from e
        if not isinstance(params, dict):
            raise WizError("setPilot params must be a JSON object")
        await light.set_pilot(params)
        print(f"{light.ip}: applied {json.dumps(params)}")
    elif command == "reboot":
        await light.reboot()
        print(f"{light.ip}: rebooting")
    elif command == "reset":
        await light.reset()
        print(f"{light.ip}: factory reset sent")
    elif command == "power":
        watts = await light.get_power()
        print(f"{light.ip}: {watts} W" if watts is not None else f"{light.ip}: power not reported")
    elif command == "config":
        _print_json({
            "system": await light.get_system_config(),
            "user": await light.get_user_config(),
            "model": await light.get_model_config(),
        })
    elif command == "diagnostics":
        _print_json(await light.diagnostics())


async def run_listen(config: ClientConfig) -> None:
    """Register with bulbs and print their pushed state until interrupted."""
    history = MessageHistory()
    push = PushManager(history=history, poll_interval=config.poll_interval, bind_ip=config.bind_ip)

    ips = list(config.ips)
    if not ips:
        bulbs = await discover_bulbs(config.discover_timeout, poll_interval=config.poll_interval)
        ips = [bulb.ip for bulb in bulbs]
        logger.info("Discovered %d bulb(s) to listen to", len(ips))

    def on_state(mac: str, params: dict) -> None:
        print(f"[{mac}] {json.dumps(params, sort_keys=True)}")

    monitor: Optional[PushMonitor] = None
    if config.http_port:
        monitor = PushMonitor(push, history=history, http_port=config.http_port, bind_ip=config.bind_ip)
        monitor.watch_first_beats()

    for ip in ips:
        mac = await Light(ip).get_mac()
        if not mac:
            logger.warning("%s did not report a MAC address, skipping", ip)
            continue
        if monitor is not None:
            monitor.track(mac)
        else:
            push.subscribe(mac, on_state)
        logger.info("Subscribed to %s (MAC=%s)", ip, mac)

    async with push:
        await push.start(config.get_local_ip())
        for ip in ips:
            await push.register_bulb(ip)
        if monitor is not None:
            await monitor.start()

        print("Listening for push notifications... (Ctrl+C to stop)")
        try:
            while push.is_running:
                await asyncio.sleep(10)
                diag = push.diagnostics()
                logger.debug(
                    "Push: subscribers=%d last_push=%s last_error=%s",
                    diag.subscription_count, diag.time_since_last_push, diag.last_error,
                )
        except asyncio.CancelledError:
            pass
        finally:
            if monitor is not None:
                await monitor.stop()


async def async_main(argv: Optional[List[str]] = None) -> int:
    config = ClientConfig.from_cli(argv)

    setup_logging(config.log_level)

    try:
        if config.discover:
            await run_discover(config)
            return 0

        if config.command == "listen":
            await run_listen(config)
            return 0

        if not config.command or not config.ips:
            print("Error: a bulb IP and a command are required.")
            print("")
            print("  Use --discover to find lights on your network:")
            print("    wizlink --discover")
            print("")
            print("  Then send a command:")
            print("    wizlink --ip 192.168.1.40 status")
            return 1

        for ip in config.ips:
            await run_command(Light(ip), config.command, config.command_args)
    except WizError as e:
        logger.error("%s", e)
        return 1
    return 0


def main() -> None:
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print("\nInterrupted.")


if __name__ == "__main__":
    main()
