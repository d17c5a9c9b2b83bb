"""
Tailscale Client Wrapper
========================

Thin wrapper over the ``tailscale`` CLI. Only the handful of
subcommands the router needs are exposed.
"""

import shutil
from typing import List, Optional

from loguru import logger

from .system_runner import CommandResult, SystemCommandRunner


class TailscaleClient:
    """Access to the local Tailscale daemon through its CLI."""

    def __init__(self, runner: SystemCommandRunner, binary: str = "tailscale"):
        self.runner = runner
        self.binary = binary

    def is_installed(self) -> bool:
        return shutil.which(self.binary) is not None

    def is_running(self) -> bool:
        """True if ``tailscale status`` succeeds."""
        return self.runner.run([self.binary, "status"]).ok

    def provider_exit_nodes_enabled(self) -> bool:
        """Check whether provider (Mullvad) exit nodes are offered to this device."""
        result = self.runner.run([self.binary, "status"])
        if not result.ok:
            logger.warning(f"Error checking Tailscale status: {result.stderr}")
            return False
        return "Exit Node Available: Mullvad" in result.stdout

    def list_exit_nodes(self) -> CommandResult:
        return self.runner.run([self.binary, "exit-node", "list"])

    def exit_node_command(self, ip: Optional[str]) -> List[str]:
        """
        Build the command that points the client at an exit node.

        Args:
            ip: Exit node address, or None to clear the exit node

        Returns:
            argv list for the runner
        """
        return [self.binary, "set", f"--exit-node={ip or ''}"]
