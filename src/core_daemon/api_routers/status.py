"""
Manages API routes for service status and frame inspection.

This module provides FastAPI endpoints for:
- Liveness and readiness probes.
- Prometheus metrics exposition.
- Decoding a submitted frame against the device registry without storing it.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core_daemon import app_state
from core_daemon._version import VERSION
from core_daemon.models import DecodeRequest, DecodeResponse, HealthStatus
from upro_decoder import DecodeError, decode_frame

logger = logging.getLogger(__name__)

api_router_status = APIRouter()


class _CollectingChannel:
    """Reply channel that keeps replies instead of sending them."""

    def __init__(self):
        self.replies = []

    def write(self, message: str) -> None:
        self.replies.append(message)


@api_router_status.get("/healthz", response_model=HealthStatus)
async def healthz(request: Request):
    """Liveness probe, also reporting whether the TCP listener is running."""
    server = getattr(request.app.state, "tcp_server", None)
    return HealthStatus(
        status="ok",
        listener=bool(server is not None and server.is_serving()),
        devices=len(app_state.device_registry),
        positions=len(app_state.latest_positions),
    )


@api_router_status.get("/readyz")
async def readyz():
    """
    Readiness probe: 200 once at least one position was decoded, else 503.
    """
    ready = len(app_state.latest_positions) > 0
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "pending",
            "positions": len(app_state.latest_positions),
        },
    )


@api_router_status.get("/version")
async def version():
    return {"version": VERSION}


@api_router_status.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@api_router_status.post("/decode", response_model=DecodeResponse)
async def decode_message(request: DecodeRequest):
    """
    Decode one frame with the live decoder configuration.

    Nothing is stored and no reply is sent; the reply the device would have
    received is returned instead.
    """
    channel = _CollectingChannel()
    try:
        position = decode_frame(
            request.message,
            app_state.device_registry.read_only(),
            channel,
            century_base=app_state.frame_decoder.century_base,
        )
    except DecodeError as e:
        return DecodeResponse(
            accepted=False,
            error=type(e).__name__,
            detail=str(e),
            reply=channel.replies[0] if channel.replies else None,
        )
    return DecodeResponse(
        accepted=True,
        position=position,
        reply=channel.replies[0] if channel.replies else None,
    )
