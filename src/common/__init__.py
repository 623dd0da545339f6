"""
common

This package contains shared models and utilities used across the upro2api project.

Modules:
    - models: Defines shared Pydantic models used by the decoder and the daemon
"""

from .models import DeviceSession, Position

__all__ = ["DeviceSession", "Position"]
