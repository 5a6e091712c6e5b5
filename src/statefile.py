"""
State Store - JSON file of tracked resources.

Maps resource addresses (``<type>.<name>``) to their resource type and
tracked attributes. Every write replaces the file atomically.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from models import TrackedState

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def make_address(resource_type: str, name: str) -> str:
    return f"{resource_type}.{name}"


def split_address(address: str) -> Tuple[str, str]:
    """Split an address into (resource type, name)."""
    resource_type, sep, name = address.partition(".")
    if not sep or not resource_type or not name:
        raise ValueError(f"Invalid resource address: {address!r}")
    return resource_type, name


class StateStore:
    """Tracked state of all resources, persisted to a JSON file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._resources: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._loaded = False

    def load(self) -> None:
        """Load the state file, an absent file means no tracked resources."""
        if not self.path.exists():
            self._resources = {}
            self._loaded = True
            return

        with open(self.path, "r") as f:
            data = json.load(f)

        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise ValueError(
                f"Unsupported state file version {version} in {self.path}"
            )

        self._resources = data.get("resources", {})
        self._loaded = True
        logger.debug(f"Loaded {len(self._resources)} resources from {self.path}")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _write(self) -> None:
        data = {"version": STATE_VERSION, "resources": self._resources}
        directory = self.path.parent if str(self.path.parent) else Path(".")
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def addresses(self) -> List[str]:
        """List tracked resource addresses."""
        self._ensure_loaded()
        return sorted(self._resources.keys())

    def get(self, address: str) -> Optional[Tuple[str, TrackedState]]:
        """
        Get a tracked resource.

        Returns:
            Tuple of (resource type, tracked state), or None if untracked.
        """
        self._ensure_loaded()
        entry = self._resources.get(address)
        if entry is None:
            return None
        return entry["type"], TrackedState.from_dict(entry["attributes"])

    def put(self, address: str, resource_type: str, state: TrackedState) -> None:
        """Track or overwrite a resource and persist the file."""
        with self._lock:
            self._ensure_loaded()
            self._resources[address] = {
                "type": resource_type,
                "attributes": state.to_dict(),
            }
            self._write()
        logger.debug(f"Saved state for {address}")

    def remove(self, address: str) -> bool:
        """
        Stop tracking a resource and persist the file.

        Returns:
            True if the resource was tracked.
        """
        with self._lock:
            self._ensure_loaded()
            if address not in self._resources:
                return False
            del self._resources[address]
            self._write()
        logger.info(f"Removed {address} from state")
        return True
