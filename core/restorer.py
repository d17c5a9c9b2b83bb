"""
Startup Restorer
================

Re-applies the persisted mode once the Tailscale client is ready.

After boot tailscaled can take a few seconds before it reports any
exit nodes, so the restorer polls the directory first and gives up
(leaving the host's rules untouched) if nothing shows up in time.
"""

import threading
import time
from typing import Callable, Dict

from loguru import logger

from .errors import DirectoryUnavailable, RouterError
from .exit_nodes import ExitNode, ExitNodeDirectory
from .mode import ModeStore
from .state_machine import ModeStateMachine


class StartupRestorer:
    """Restores the last persisted routing mode on startup."""

    def __init__(self, directory: ExitNodeDirectory, state_machine: ModeStateMachine,
                 store: ModeStore, attempts: int = 10, interval: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.directory = directory
        self.state_machine = state_machine
        self.store = store
        self.attempts = attempts
        self.interval = interval
        self._sleep = sleep

    def wait_for_exit_nodes(self) -> Dict[str, ExitNode]:
        """Poll the directory until it is non-empty or attempts run out."""
        for attempt in range(1, self.attempts + 1):
            try:
                nodes = self.directory.list()
            except DirectoryUnavailable as e:
                logger.debug(f"Directory not ready (attempt {attempt}): {e}")
                nodes = {}

            if nodes:
                return nodes

            logger.info("Waiting for exit nodes to become available...")
            if attempt < self.attempts:
                self._sleep(self.interval)

        return {}

    def run(self) -> bool:
        """
        Restore the persisted mode.

        Returns:
            True if the mode was re-applied, False otherwise
        """
        logger.info("Checking saved mode on startup...")

        nodes = self.wait_for_exit_nodes()
        if not nodes:
            logger.error("No exit nodes detected! Cannot restore previous mode.")
            return False

        self.state_machine.remember_exit_nodes(nodes)

        mode = self.store.load()
        logger.info(f"Restoring mode: {mode}")

        try:
            self.state_machine.transition(mode)
        except RouterError as e:
            logger.error(f"Failed to restore mode {mode}: {e}")
            return False

        logger.info(f"Successfully restored mode: {mode}")
        return True

    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, daemon=True, name="StartupRestorer")
        thread.start()
        return thread
