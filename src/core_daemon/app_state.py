"""
Manages the in-memory application state for the upro2api daemon.

This module holds the latest decoded position of every device, a bounded
per-device position history, the device registry used as the decoder's session
resolver and the shared frame decoder. It provides functions to initialize,
update, and access this shared state.
"""

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, List, Optional

from common.models import Position
from core_daemon.device_registry import DeviceRegistry
from core_daemon.metrics import FUTURE_FIXES, HISTORY_SIZE_GAUGE, POSITION_COUNT
from upro_decoder import DEFAULT_CENTURY_BASE, UproFrameDecoder

logger = logging.getLogger(__name__)

# History retention
HISTORY_DURATION = timedelta(hours=24)
MAX_HISTORY_LENGTH: int = 1000

# Fix times further ahead of arrival than this come from a bad device clock
MAX_CLOCK_SKEW = timedelta(hours=12)

# Most recent position per device_id
latest_positions: Dict[int, Position] = {}

# Position history per device_id, oldest first
history: Dict[int, Deque[Position]] = {}

# Populated by initialize_app_from_config
device_registry: DeviceRegistry = DeviceRegistry()
frame_decoder: UproFrameDecoder = UproFrameDecoder(device_registry)


def initialize_app_from_config(registry: DeviceRegistry, decoder_config: dict) -> None:
    """
    Installs the device registry and builds the shared frame decoder.

    Args:
        registry: Loaded device registry, used as the decoder's session resolver.
        decoder_config: Settings from config.get_decoder_config().
    """
    global device_registry, frame_decoder

    device_registry = registry
    device_registry.register_unknown = decoder_config.get("register_unknown", False)
    frame_decoder = UproFrameDecoder(
        device_registry,
        century_base=decoder_config.get("century_base", DEFAULT_CENTURY_BASE),
    )

    latest_positions.clear()
    history.clear()
    POSITION_COUNT.set(0)

    logger.info(
        f"Application state initialized with {len(device_registry)} device(s), "
        f"century_base={frame_decoder.century_base}, "
        f"register_unknown={device_registry.register_unknown}"
    )


def _position_time(position: Position) -> datetime:
    return position.time or datetime.now(timezone.utc)


def update_position(position: Position, now: Optional[datetime] = None) -> bool:
    """
    Stores a decoded position as the device's latest and appends it to its history.

    Positions whose fix time is more than MAX_CLOCK_SKEW ahead of `now` are not
    stored. Among stored positions the latest is the one with the newest fix time.
    History entries older than HISTORY_DURATION relative to the newest stored fix,
    and entries beyond MAX_HISTORY_LENGTH, are discarded.

    Args:
        position: Decoded position.
        now: Arrival time; defaults to the current UTC time.

    Returns:
        True if the position was stored.
    """
    now = now or datetime.now(timezone.utc)
    device_id = position.device_id

    if position.time is not None and position.time > now + MAX_CLOCK_SKEW:
        FUTURE_FIXES.inc()
        logger.warning(
            f"Not storing position from device {device_id}: fix time {position.time} "
            f"is ahead of {now}"
        )
        return False

    current = latest_positions.get(device_id)
    if current is None or _position_time(position) >= _position_time(current):
        latest_positions[device_id] = position
    POSITION_COUNT.set(len(latest_positions))

    history_deque = history.setdefault(device_id, deque(maxlen=MAX_HISTORY_LENGTH))
    history_deque.append(position)
    cutoff = _position_time(latest_positions[device_id]) - HISTORY_DURATION
    if any(_position_time(p) < cutoff for p in history_deque):
        history_deque = deque(
            (p for p in history_deque if _position_time(p) >= cutoff), maxlen=MAX_HISTORY_LENGTH
        )
        history[device_id] = history_deque
    HISTORY_SIZE_GAUGE.labels(device_id=str(device_id)).set(len(history_deque))
    return True


def get_latest_position(device_id: int) -> Optional[Position]:
    return latest_positions.get(device_id)


def get_history(
    device_id: int, since: Optional[datetime] = None, limit: Optional[int] = None
) -> List[Position]:
    """
    Returns stored positions for a device, oldest first.

    Args:
        device_id: Device to look up.
        since: Only positions with a fix time after this.
        limit: Keep only the most recent `limit` entries.
    """
    entries = list(history.get(device_id, ()))
    if since is not None:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        entries = [p for p in entries if p.time is not None and p.time > since]
    if limit is not None:
        entries = entries[-limit:]
    return entries
