"""
Routing Mode and Mode Persistence
=================================

A host routes either directly through its own WAN or through one
Tailscale exit node. The active mode survives reboots through a small
JSON file::

    {"mode": "direct"}
    {"mode": "tailscale:homeserver"}

A missing or unreadable file is never fatal: the router falls back to
direct mode.
"""

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

EXIT_NODE_PREFIX = "tailscale:"


class ModeKind(Enum):
    DIRECT = "direct"
    EXIT_NODE = "tailscale"


@dataclass(frozen=True)
class Mode:
    """Routing mode: direct, or through the named exit node."""
    kind: ModeKind = ModeKind.DIRECT
    node_name: Optional[str] = None

    @classmethod
    def direct(cls) -> "Mode":
        return cls(ModeKind.DIRECT)

    @classmethod
    def exit_node(cls, node_name: str) -> "Mode":
        if not node_name:
            raise ValueError("exit node name must not be empty")
        return cls(ModeKind.EXIT_NODE, node_name)

    @property
    def is_direct(self) -> bool:
        return self.kind is ModeKind.DIRECT

    def serialize(self) -> str:
        if self.is_direct:
            return ModeKind.DIRECT.value
        return EXIT_NODE_PREFIX + self.node_name

    @classmethod
    def parse(cls, value) -> "Mode":
        """Decode a persisted mode string; anything unrecognised is direct."""
        if isinstance(value, str) and value.startswith(EXIT_NODE_PREFIX):
            node_name = value[len(EXIT_NODE_PREFIX):]
            if node_name:
                return cls.exit_node(node_name)
        if value != ModeKind.DIRECT.value:
            logger.warning(f"Unrecognised persisted mode {value!r}, using direct")
        return cls.direct()

    def __str__(self) -> str:
        return self.serialize()


class ModeStore:
    """Reads and writes the persisted mode file."""

    def __init__(self, path: str = "/etc/tailscale-mode.json"):
        self.path = Path(path)

    def load(self) -> Mode:
        try:
            with open(self.path, "r") as f:
                state = json.load(f)
        except FileNotFoundError:
            logger.info("No previous mode found, defaulting to direct")
            return Mode.direct()
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading mode file {self.path}, defaulting to direct: {e}")
            return Mode.direct()

        if not isinstance(state, dict):
            logger.warning(f"Mode file {self.path} is not a JSON object, defaulting to direct")
            return Mode.direct()

        return Mode.parse(state.get("mode"))

    def save(self, mode: Mode) -> bool:
        """
        Persist a mode, replacing the file atomically.

        Returns:
            True if successful, False otherwise
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump({"mode": mode.serialize()}, f, separators=(",", ":"))
            os.replace(tmp_path, self.path)
            logger.info(f"Saved mode {mode}")
            return True

        except OSError as e:
            logger.error(f"Failed to save mode {mode} to {self.path}: {e}")
            return False
