"""
Mode State Machine
==================

Owns the router's current mode. All transitions, and every status read
that needs a consistent view of mode plus exit nodes, go through one
lock so two requests can never interleave rule installation.

A transition either completes (rules applied, mode updated, file
written) or leaves both the in-memory and the persisted mode exactly
as they were. A failed file write is logged but does not undo rules
that are already live.

The post-apply hygiene tasks are queued after the lock is released.
"""

import threading
from typing import Dict, Optional, Tuple

from loguru import logger

from .errors import DirectoryUnavailable
from .exit_nodes import ExitNode, ExitNodeDirectory
from .mode import Mode, ModeStore
from .routing import RoutingConfigurator


class ModeStateMachine:
    """Process-wide router state: current mode and last known exit nodes."""

    def __init__(self, configurator: RoutingConfigurator, store: ModeStore,
                 directory: ExitNodeDirectory, initial_mode: Optional[Mode] = None):
        self.configurator = configurator
        self.store = store
        self.directory = directory

        self._lock = threading.Lock()
        self._mode = initial_mode if initial_mode is not None else store.load()
        self._exit_nodes: Dict[str, ExitNode] = {}

        logger.info(f"ModeStateMachine initialized (mode: {self._mode})")

    @property
    def mode(self) -> Mode:
        return self._mode

    def set_direct(self) -> Mode:
        return self.transition(Mode.direct())

    def set_exit_node(self, node_name: str) -> Mode:
        return self.transition(Mode.exit_node(node_name))

    def transition(self, target: Mode) -> Mode:
        """
        Drive the router to a mode.

        Re-entering the active mode is allowed and re-applies the rules,
        which repairs rules changed behind our back.

        Args:
            target: Mode to switch to

        Returns:
            The new active mode

        Raises:
            RouterError: the configurator failed; nothing was committed
        """
        with self._lock:
            previous = self._mode
            logger.info(f"Mode transition {previous} -> {target}")

            plan = self.configurator.apply(target)

            self._mode = target
            if not self.store.save(target):
                logger.error(f"Mode {target} is active but was not persisted; "
                             f"it will not be restored after a restart")

            logger.info(f"Switched to mode: {target}")

        self.configurator.schedule_hygiene(plan)
        return target

    def snapshot(self) -> Tuple[Mode, Dict[str, ExitNode]]:
        """
        Current mode and a refreshed exit node listing.

        If the directory cannot be listed the last good listing is
        returned instead.
        """
        with self._lock:
            try:
                self._exit_nodes = self.directory.list()
            except DirectoryUnavailable as e:
                logger.warning(f"Using cached exit nodes: {e}")
            return self._mode, dict(self._exit_nodes)

    def remember_exit_nodes(self, nodes: Dict[str, ExitNode]) -> None:
        with self._lock:
            self._exit_nodes = dict(nodes)
