"""
In-memory device registry for the upro2api daemon.

The registry maps the identifier a tracker sends on the wire (its unique id) to a
DeviceSession and is what the decoder uses as its session resolver. Entries are
loaded from a YAML file of the form:

    devices:
      - unique_id: "0905447674"
        device_id: 1
        name: "Van 12"

When register_unknown is enabled, ids missing from the file are added on first
contact instead of being rejected.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from common.models import DeviceSession

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Resolves wire-level device ids to DeviceSession objects."""

    def __init__(
        self,
        sessions: Optional[List[DeviceSession]] = None,
        register_unknown: bool = False,
    ):
        self.register_unknown = register_unknown
        self._sessions: Dict[str, DeviceSession] = {}
        self._remote_addresses: Dict[int, Any] = {}
        for session in sessions or []:
            self._sessions[session.unique_id] = session

    def __len__(self) -> int:
        return len(self._sessions)

    def _next_device_id(self) -> int:
        return max((s.device_id for s in self._sessions.values()), default=0) + 1

    def add(self, unique_id: str, device_id: Optional[int] = None, name: Optional[str] = None):
        if device_id is None:
            device_id = self._next_device_id()
        session = DeviceSession(device_id=device_id, unique_id=unique_id, name=name)
        self._sessions[unique_id] = session
        return session

    def find(self, unique_id: str) -> Optional[DeviceSession]:
        """Look up a session without registering unknown ids."""
        return self._sessions.get(unique_id)

    def read_only(self) -> "ReadOnlyRegistry":
        return ReadOnlyRegistry(self)

    def get_device_session(
        self, unique_id: str, channel: Optional[Any] = None, remote_address: Optional[Any] = None
    ) -> Optional[DeviceSession]:
        """
        Look up the session for unique_id.

        Unknown ids are registered when register_unknown is set, otherwise None is
        returned. The remote address of the last frame is remembered per device.
        """
        session = self._sessions.get(unique_id)
        if session is None:
            if not self.register_unknown:
                return None
            session = self.add(unique_id)
            logger.info(f"Registered new device {unique_id} as device_id={session.device_id}")

        if remote_address is not None:
            self._remote_addresses[session.device_id] = remote_address
        return session

    def get_remote_address(self, device_id: int) -> Optional[Any]:
        return self._remote_addresses.get(device_id)

    def list_sessions(self) -> List[DeviceSession]:
        return sorted(self._sessions.values(), key=lambda s: s.device_id)


class ReadOnlyRegistry:
    """Session resolver view of a DeviceRegistry that never registers or records anything."""

    def __init__(self, registry: DeviceRegistry):
        self.registry = registry

    def get_device_session(
        self, unique_id: str, channel: Optional[Any] = None, remote_address: Optional[Any] = None
    ) -> Optional[DeviceSession]:
        return self.registry.find(unique_id)


def load_device_registry(path: str, register_unknown: bool = False) -> DeviceRegistry:
    """
    Load a DeviceRegistry from a YAML file.

    Entries without a unique_id are skipped. Entries without a device_id get the next
    free integer. A missing file yields an empty registry.

    Args:
        path: Path to the YAML device file.
        register_unknown: Passed through to the registry.

    Returns:
        DeviceRegistry: The populated registry.
    """
    registry = DeviceRegistry(register_unknown=register_unknown)

    if not os.path.exists(path):
        logger.error(f"Device registry file NOT FOUND: {path}")
        return registry

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    entries = (raw.get("devices") or []) if isinstance(raw, dict) else []
    if not isinstance(entries, list):
        logger.error(f"'devices' in {path} is not a list; registry is empty")
        return registry

    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("unique_id"):
            logger.warning(f"Skipping device entry without unique_id: {entry}")
            continue
        device_id = entry.get("device_id")
        registry.add(
            str(entry["unique_id"]),
            int(device_id) if device_id is not None else None,
            entry.get("name"),
        )

    logger.info(f"Loaded {len(registry)} device(s) from {path}")
    return registry
