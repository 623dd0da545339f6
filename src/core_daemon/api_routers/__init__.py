"""
api_routers

This package contains FastAPI APIRouter modules that define the API endpoints
for the upro2api application.

Routers:
    - positions: Endpoints for devices and their decoded positions
    - status: Health, metrics and frame decoding endpoints
"""

from .positions import api_router_positions
from .status import api_router_status

__all__ = ["api_router_positions", "api_router_status"]
