"""
Defines FastAPI APIRouter for reading decoded positions and known devices.

This module includes routes for:
- Listing the devices in the registry.
- Listing the latest position of every device.
- Retrieving the latest position and the position history of one device.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query

from core_daemon import app_state
from core_daemon.models import DeviceSession, Position

logger = logging.getLogger(__name__)

api_router_positions = APIRouter()


@api_router_positions.get("/devices", response_model=List[DeviceSession])
async def list_devices():
    """Return all devices known to the registry."""
    return app_state.device_registry.list_sessions()


@api_router_positions.get("/positions", response_model=Dict[str, Position])
async def list_positions():
    """Return the latest position of every device, keyed by device_id."""
    return {str(device_id): pos for device_id, pos in app_state.latest_positions.items()}


@api_router_positions.get("/positions/{device_id}", response_model=Position)
async def get_position(device_id: int):
    """
    Return the latest position of one device.

    Raises:
        HTTPException: If no position has been stored for the device.
    """
    position = app_state.get_latest_position(device_id)
    if position is None:
        raise HTTPException(status_code=404, detail="No position for device")
    return position


@api_router_positions.get("/positions/{device_id}/history", response_model=List[Position])
async def get_position_history(
    device_id: int,
    since: Optional[datetime] = Query(None, description="Only positions with a later fix time"),
    limit: Optional[int] = Query(1000, ge=1, description="Max number of points to return"),
):
    """
    Return the stored position history of one device, oldest first.

    Raises:
        HTTPException: If the device has no stored history.
    """
    if device_id not in app_state.history:
        raise HTTPException(status_code=404, detail="No history for device")
    return app_state.get_history(device_id, since=since, limit=limit)
