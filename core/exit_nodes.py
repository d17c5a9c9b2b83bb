"""
Exit Node Directory
===================

Lists peers offering exit-node service, as reported by
``tailscale exit-node list``.

Output looks like::

     IP                  HOSTNAME                          COUNTRY     CITY        STATUS
     100.101.102.103     homeserver                        -           -           -
     100.88.1.7          us-nyc-wg-301.mullvad.ts.net      USA         NYC         -

Rows without geo data are self-hosted (private) nodes and are keyed by
hostname. Geo-tagged rows come from a provider and are keyed by
``"hostname (country, city)"``.
"""

import re
from dataclasses import dataclass, asdict
from typing import Dict

from loguru import logger

from .errors import DirectoryUnavailable, NodeNotFound
from .tailscale_client import TailscaleClient

# Tailscale assigns node addresses from the CGNAT range 100.64.0.0/10
TAILSCALE_ADDRESS = re.compile(r"^100\.")
HEADER_MARKERS = ("HOSTNAME", "To (have")


@dataclass
class ExitNode:
    """A peer this host can route its traffic through."""
    ip: str
    display_name: str
    active: bool

    def to_dict(self) -> Dict:
        return asdict(self)


def parse_exit_node_list(output: str) -> Dict[str, ExitNode]:
    """
    Parse ``tailscale exit-node list`` output into a directory snapshot.

    Provider entries are merged after private ones, so a provider entry
    whose key equals a private hostname replaces it.

    Args:
        output: Raw stdout of the exit-node listing

    Returns:
        Mapping of display name to ExitNode
    """
    private_nodes: Dict[str, ExitNode] = {}
    provider_nodes: Dict[str, ExitNode] = {}

    for line in output.splitlines():
        fields = line.split()

        if len(fields) < 5 or any(marker in line for marker in HEADER_MARKERS):
            continue

        ip, hostname, country, city, status = fields[:5]

        # Partial or garbled rows
        if not TAILSCALE_ADDRESS.match(ip):
            continue

        active = "offline" not in status

        if country == "-" and city == "-":
            private_nodes[hostname] = ExitNode(ip=ip, display_name=hostname, active=active)
        else:
            display_name = f"{hostname} ({country}, {city})"
            provider_nodes[display_name] = ExitNode(ip=ip, display_name=display_name, active=active)

    nodes: Dict[str, ExitNode] = {}
    nodes.update(private_nodes)
    nodes.update(provider_nodes)
    return nodes


class ExitNodeDirectory:
    """Live view of the exit nodes offered to this host."""

    def __init__(self, client: TailscaleClient):
        self.client = client

    def list(self) -> Dict[str, ExitNode]:
        """
        Query the client for exit nodes.

        Raises:
            DirectoryUnavailable: the listing command failed
        """
        result = self.client.list_exit_nodes()
        if not result.ok:
            raise DirectoryUnavailable(
                f"tailscale exit-node list failed (rc={result.returncode}): {result.stderr}"
            )

        nodes = parse_exit_node_list(result.stdout)
        logger.debug(f"Exit node directory: {len(nodes)} nodes")
        return nodes

    def lookup(self, name: str) -> ExitNode:
        """Resolve a display name against a fresh listing."""
        node = self.list().get(name)
        if node is None:
            raise NodeNotFound(name)
        return node
