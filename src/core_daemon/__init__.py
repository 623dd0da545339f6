"""
core_daemon

Gateway service for upro2api: receives Upro tracker frames over TCP, decodes them
with upro_decoder and serves the resulting positions through a FastAPI backend.

Modules:
    - app_state: Application state management and initialization
    - config: Application configuration and logging setup
    - device_registry: Device registry used as the decoder's session resolver
    - frame_processing: Decoding, metrics and storage for one inbound frame
    - tcp_manager: TCP listener and per-connection frame splitting
    - main: FastAPI application setup and server entry point
    - models: Pydantic models for API request/response validation
"""

from ._version import VERSION
from .app_state import initialize_app_from_config
from .config import configure_logger, get_device_registry_path
from .device_registry import DeviceRegistry, load_device_registry

__all__ = [
    "VERSION",
    "initialize_app_from_config",
    "configure_logger",
    "get_device_registry_path",
    "DeviceRegistry",
    "load_device_registry",
]
