"""
System Command Runner
=====================

Single seam between the router and the privileged system tools
(tailscale, iptables, sysctl, modprobe, ip, arping, ping).

Every invocation gets an explicit timeout. A tool that is missing or
hangs is reported as a failed command rather than an exception, so
callers decide whether the failure is fatal.
"""

import subprocess
from dataclasses import dataclass
from typing import List, Sequence

from loguru import logger

DEFAULT_TIMEOUT = 30  # seconds per command


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.args)


class SystemCommandRunner:
    """Runs external commands with captured output."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        argv = list(args)
        logger.debug(f"exec: {' '.join(argv)}")

        try:
            r = subprocess.run(
                argv, capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError:
            return CommandResult(argv, 127, "", f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {self.timeout}s: {' '.join(argv)}")
            return CommandResult(argv, -1, "", f"timed out after {self.timeout}s")

        return CommandResult(argv, r.returncode, r.stdout, r.stderr.strip())
