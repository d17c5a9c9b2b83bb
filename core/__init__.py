"""
Tailscale Router Core
=====================

Exit-node routing control for a single Linux host.

Modules:
- system_runner: external command execution with timeouts
- tailscale_client: wrapper over the tailscale CLI
- exit_nodes: exit node directory
- interfaces: WAN/LAN interface detection
- routing: NAT and forwarding rule installation
- background: fire-and-forget worker pool
- mode: routing mode and its persistence
- state_machine: serialized mode transitions
- restorer: restore persisted mode on startup
- api_auth: session cookie authentication
"""

from .errors import (
    RouterError,
    DirectoryUnavailable,
    NoDefaultRoute,
    InterfaceDetectionFailed,
    NodeNotFound,
    ClientConfigFailed,
)
from .system_runner import SystemCommandRunner, CommandResult
from .tailscale_client import TailscaleClient
from .exit_nodes import ExitNode, ExitNodeDirectory, parse_exit_node_list
from .interfaces import InterfaceDetector
from .background import BackgroundTasks
from .config import RouterConfig, create_router_config
from .mode import Mode, ModeKind, ModeStore
from .routing import RoutingConfigurator, RoutingPlan, Step, FailurePolicy
from .state_machine import ModeStateMachine
from .restorer import StartupRestorer

__all__ = [
    "RouterError",
    "DirectoryUnavailable",
    "NoDefaultRoute",
    "InterfaceDetectionFailed",
    "NodeNotFound",
    "ClientConfigFailed",
    "SystemCommandRunner",
    "CommandResult",
    "TailscaleClient",
    "ExitNode",
    "ExitNodeDirectory",
    "parse_exit_node_list",
    "InterfaceDetector",
    "BackgroundTasks",
    "RouterConfig",
    "create_router_config",
    "Mode",
    "ModeKind",
    "ModeStore",
    "RoutingConfigurator",
    "RoutingPlan",
    "Step",
    "FailurePolicy",
    "ModeStateMachine",
    "StartupRestorer",
]

__version__ = "1.0.0"
