"""
Defines Pydantic models for API request/response validation and serialization.

Models:
    - DecodeRequest: Raw frame submitted to the decode endpoint
    - DecodeResponse: Outcome of decoding a submitted frame
    - HealthStatus: Liveness report
    - Position, DeviceSession: (re-exported from common.models)
"""

from typing import Optional

from pydantic import BaseModel, Field

from common.models import DeviceSession, Position

__all__ = ["DecodeRequest", "DecodeResponse", "DeviceSession", "HealthStatus", "Position"]


class DecodeRequest(BaseModel):
    """A raw Upro frame to decode."""

    message: str = Field(..., min_length=1, description="One text frame, '#' optional.")


class DecodeResponse(BaseModel):
    """Result of decoding one frame without storing it."""

    accepted: bool
    error: Optional[str] = Field(
        None,
        description=(
            "Error kind when no position was produced: MalformedFrame, UnknownDevice "
            "or AcceptanceGateFailed."
        ),
    )
    detail: Optional[str] = None
    position: Optional[Position] = None
    reply: Optional[str] = Field(
        None, description="Acknowledgment frame the device would receive, if it requested one."
    )


class HealthStatus(BaseModel):
    status: str
    listener: bool
    devices: int
    positions: int
