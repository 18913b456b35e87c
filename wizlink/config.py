"""Configuration management for the wizlink command-line tool."""

import argparse
import json
import socket
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

COMMANDS = (
    "status", "on", "off", "toggle", "set", "reboot", "reset",
    "power", "config", "diagnostics", "listen",
)


@dataclass
class ClientConfig:
    ips: List[str] = field(default_factory=list)
    local_ip: str = ""
    discover: bool = False
    discover_timeout: float = 5.0
    # Sub-timeout for discovery receives and the push receive loop
    poll_interval: float = 0.5
    http_port: int = 0
    bind_ip: str = "0.0.0.0"
    log_level: str = "INFO"
    command: Optional[str] = None
    command_args: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, config_path: str = "wizlink.json") -> "ClientConfig":
        """Overlay a JSON file on the defaults.

        A missing file leaves every default in place; keys that are not
        fields are ignored.
        """
        config = cls()
        path = Path(config_path)
        if not path.is_file():
            return config
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{config_path}: expected a JSON object")
        known = {f.name for f in fields(cls)}
        for key in known.intersection(data):
            setattr(config, key, data[key])
        return config

    @classmethod
    def from_cli(cls, argv: Optional[List[str]] = None) -> "ClientConfig":
        """Parse CLI args overlaid on JSON config."""
        parser = argparse.ArgumentParser(
            prog="wizlink",
            description="Discover and control WiZ lights over UDP",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=(
                "Examples:\n"
                "  wizlink --discover\n"
                "  wizlink --ip 192.168.1.40 status\n"
                "  wizlink --ip 192.168.1.40 set '{\"r\": 255, \"g\": 0, \"b\": 0}'\n"
                "  wizlink --ip 192.168.1.40 --ip 192.168.1.41 listen --http-port 8038\n"
            ),
        )
        parser.add_argument("--config", default="wizlink.json", help="Path to config JSON file (default: wizlink.json)")
        parser.add_argument("--ip", dest="ips", action="append", help="Bulb IP address (repeat for several bulbs)")
        parser.add_argument("--local-ip", dest="local_ip", help="This machine's LAN address, used for push registration")
        parser.add_argument("--discover", action="store_true", default=None, help="Discover bulbs on the network and exit")
        parser.add_argument("--timeout", dest="discover_timeout", type=float, help="Discovery timeout in seconds (default: 5)")
        parser.add_argument("--poll-interval", dest="poll_interval", type=float, help="Receive sub-timeout in seconds (default: 0.5)")
        parser.add_argument("--http-port", dest="http_port", type=int, help="Serve push state as JSON on this port while listening")
        parser.add_argument("--bind", dest="bind_ip", help="Bind address for listeners (default: 0.0.0.0)")
        parser.add_argument("--log-level", dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level (default: INFO)")
        parser.add_argument("command", nargs="?", choices=COMMANDS, help="Action to perform on the bulb(s)")
        parser.add_argument("command_args", nargs="*", help="Arguments for the command (setPilot params JSON for 'set')")

        args = parser.parse_args(argv)

        # Load JSON config first
        config = cls.load(args.config)

        # Override with any CLI args that were explicitly provided
        for key, value in vars(args).items():
            if key == "config":
                continue
            if key == "command_args" and not value:
                continue
            if value is not None:
                setattr(config, key, value)

        return config

    def get_local_ip(self) -> str:
        """LAN address bulbs should push to; ``local_ip`` wins when set."""
        if self.local_ip:
            return self.local_ip
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.settimeout(0.1)
                # Connecting a UDP socket sends nothing; it only picks the outbound interface
                s.connect(("8.8.8.8", 80))
                return s.getsockname()[0]
        except OSError:
            return "127.0.0.1"
