"""
common.models

Shared Pydantic models for use across upro2api modules.

Position:
    A decoded position report. Built fresh for every inbound frame by the decoder and
    handed to the daemon, which stores it and serves it over the API.

DeviceSession:
    The device reference returned by a session resolver for a wire-level device
    identifier.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

PROTOCOL_NAME = "upro"

# Attribute keys used in Position.attributes
KEY_STATUS = "status"
KEY_ODOMETER = "odometer"
KEY_MCC = "mcc"
KEY_MNC = "mnc"
KEY_LAC = "lac"
KEY_CID = "cid"
KEY_OBD = "obd"


class Position(BaseModel):
    """
    Position

    A single position report decoded from one device frame.

    Attributes:
        protocol (str): Name of the protocol that produced this report.
        device_id (int): Device reference from the session resolver.
        time (Optional[datetime]): Fix time in UTC, if the frame carried a location.
        valid (bool): True when the device reported a GPS fix.
        latitude (float): Signed decimal degrees, 0.0 when unset.
        longitude (float): Signed decimal degrees, 0.0 when unset.
        speed (float): Device speed units (raw value x2).
        course (float): Degrees (raw value x10).
        attributes (Dict[str, Any]): Protocol-specific extras (status, odometer, cell info, obd).
    """

    protocol: str = PROTOCOL_NAME
    device_id: int
    time: Optional[datetime] = None
    valid: bool = False
    latitude: float = 0.0
    longitude: float = 0.0
    speed: float = 0.0
    course: float = 0.0
    attributes: Dict[str, Any] = Field(default_factory=dict)

    def set(self, key: str, value: Any) -> None:
        """Set a protocol-specific attribute."""
        self.attributes[key] = value

    def has_coordinates(self) -> bool:
        return self.latitude != 0 and self.longitude != 0


class DeviceSession(BaseModel):
    """
    DeviceSession

    Attributes:
        device_id (int): Internal device reference.
        unique_id (str): Identifier the device sends on the wire.
        name (Optional[str]): Human-readable name from the device registry.
    """

    device_id: int
    unique_id: str
    name: Optional[str] = None
