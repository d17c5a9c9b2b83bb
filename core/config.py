"""
Router Configuration
====================

Typed view of the ``router`` section of the YAML config.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class RouterConfig:
    """Router configuration"""
    mode_file: str = "/etc/tailscale-mode.json"
    vpn_interface: str = "tailscale0"
    fallback_wan_interface: str = "eth0"
    direct_probe_address: str = "1.1.1.1"
    command_timeout: float = 30
    background_workers: int = 4
    restore_attempts: int = 10
    restore_interval: float = 1.0
    conntrack_tcp_timeout_established: int = 86400
    conntrack_udp_timeout_stream: int = 180
    arp_announce_count: int = 2


def create_router_config(config_dict: Dict) -> RouterConfig:
    """Create router config from configuration dictionary"""
    router_config = config_dict.get("router", {}) or {}
    conntrack_config = router_config.get("conntrack", {}) or {}
    defaults = RouterConfig()

    return RouterConfig(
        mode_file=router_config.get("mode_file", defaults.mode_file),
        vpn_interface=router_config.get("vpn_interface", defaults.vpn_interface),
        fallback_wan_interface=router_config.get("fallback_wan_interface", defaults.fallback_wan_interface),
        direct_probe_address=router_config.get("direct_probe_address", defaults.direct_probe_address),
        command_timeout=router_config.get("command_timeout", defaults.command_timeout),
        background_workers=router_config.get("background_workers", defaults.background_workers),
        restore_attempts=router_config.get("restore_attempts", defaults.restore_attempts),
        restore_interval=router_config.get("restore_interval", defaults.restore_interval),
        conntrack_tcp_timeout_established=conntrack_config.get(
            "tcp_timeout_established", defaults.conntrack_tcp_timeout_established
        ),
        conntrack_udp_timeout_stream=conntrack_config.get(
            "udp_timeout_stream", defaults.conntrack_udp_timeout_stream
        ),
        arp_announce_count=router_config.get("arp_announce_count", defaults.arp_announce_count),
    )
