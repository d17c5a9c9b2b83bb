"""
Router Error Taxonomy
=====================

Exceptions raised by the routing core. The HTTP layer maps them to
status codes; best-effort steps never raise any of them.
"""


class RouterError(Exception):
    """Base class for all routing errors."""


class DirectoryUnavailable(RouterError):
    """The Tailscale client could not list exit nodes."""


class NoDefaultRoute(RouterError):
    """No default route found in the host routing table."""


class InterfaceDetectionFailed(RouterError):
    """The host link listing could not be read."""


class NodeNotFound(RouterError):
    """Requested exit node is not in the current directory snapshot."""

    def __init__(self, node_name: str):
        super().__init__(f"exit node not found: {node_name}")
        self.node_name = node_name


class ClientConfigFailed(RouterError):
    """The Tailscale client refused the exit-node change."""
