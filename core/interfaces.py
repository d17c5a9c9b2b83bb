"""
Interface Detector
==================

Works out which interface carries the default route (WAN) and which
interfaces face the LAN. Nothing is cached: interfaces can come and go
between two calls, so every call reads live system state.
"""

import json
from typing import List, Optional

from loguru import logger

from .errors import InterfaceDetectionFailed, NoDefaultRoute
from .system_runner import SystemCommandRunner


class InterfaceDetector:
    """Detects WAN and LAN interfaces from ``ip`` output."""

    def __init__(self, runner: SystemCommandRunner, vpn_interface: str = "tailscale0"):
        self.runner = runner
        self.vpn_interface = vpn_interface

    def active_wan(self) -> str:
        """
        Name of the interface carrying the default route.

        Raises:
            NoDefaultRoute: routing table unreadable or has no default route
        """
        result = self.runner.run(["ip", "route", "show", "default"])
        if not result.ok:
            raise NoDefaultRoute(f"failed to read routing table: {result.stderr}")

        for line in result.stdout.splitlines():
            tokens = line.split()
            if not tokens or tokens[0] != "default" or "dev" not in tokens:
                continue
            idx = tokens.index("dev")
            if idx + 1 < len(tokens):
                wan = tokens[idx + 1]
                logger.debug(f"Detected active internet interface: {wan}")
                return wan

        raise NoDefaultRoute("no active internet interface detected")

    def lan_interfaces(self) -> List[str]:
        """
        All interfaces except loopback, the WAN and the VPN interface.

        Raises:
            NoDefaultRoute: WAN detection failed
            InterfaceDetectionFailed: link listing failed
        """
        wan = self.active_wan()

        result = self.runner.run(["ip", "-j", "link", "show"])
        if not result.ok:
            raise InterfaceDetectionFailed(f"ip link failed: {result.stderr}")

        try:
            links = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise InterfaceDetectionFailed(f"unparseable ip link output: {e}") from e

        excluded = {"lo", wan, self.vpn_interface}
        lans = [
            link.get("ifname", "") for link in links
            if link.get("ifname") and link.get("ifname") not in excluded
        ]
        logger.debug(f"LAN interfaces: {lans} (WAN={wan})")
        return lans

    def ipv4_address(self, interface: str) -> Optional[str]:
        """First IPv4 address of an interface, or None."""
        result = self.runner.run(["ip", "-j", "addr", "show", interface])
        if not result.ok:
            return None

        try:
            addr_info = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None

        if addr_info and addr_info[0].get("addr_info"):
            for addr in addr_info[0]["addr_info"]:
                if addr.get("family") == "inet":
                    return addr.get("local")
        return None
