"""
Handles application configuration for the upro2api daemon.

This module is responsible for:
- Configuring logging for the application.
- Determining and providing the path to the device registry file, considering
  environment overrides and the bundled default.
- Providing TCP listener settings (host, port, maximum frame length).
- Providing decoder settings (two-digit year century base, unknown device registration).
- Providing FastAPI application settings (title, description, root_path).
"""

import importlib.resources
import logging
import os

import coloredlogs

from upro_decoder import DEFAULT_CENTURY_BASE

# ── Logging Configuration ──────────────────────────────────────────────────
# This logger is for messages originating from the config.py module itself.
module_logger = logging.getLogger(__name__)

# Resolved path to the device registry file, populated by get_device_registry_path().
ACTUAL_DEVICES_PATH: str | None = None

TRUE_VALUES = ("1", "true", "yes", "on")

DEFAULT_TCP_PORT = 5030
DEFAULT_MAX_FRAME_LENGTH = 1024


def configure_logger():
    root_logger = logging.getLogger()
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()

    log_level_int = getattr(logging, log_level_str, None)
    if not isinstance(log_level_int, int):
        module_logger.warning(f"Invalid LOG_LEVEL '{log_level_str}'. Defaulting to INFO.")
        log_level_int = logging.INFO

    log_format = "%(asctime)s %(name)s[%(process)d] %(levelname)s %(message)s"

    # Handlers filter by their own level; the root logger passes everything through.
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    coloredlogs.install(
        level=log_level_int,
        fmt=log_format,
        logger=root_logger,
        reconfigure=True,
    )

    return root_logger


def _default_devices_path() -> str:
    """Path of the device registry bundled with the core_daemon package."""
    return str(importlib.resources.files("core_daemon") / "data" / "devices.yml")


# ── Device registry path ───────────────────────────────────────────────────
def get_device_registry_path():
    """
    Determines and returns the path to the device registry YAML file.

    The UPRO_DEVICES_PATH environment variable overrides the bundled default. An
    override that is missing or unreadable is ignored with a warning. The result is
    cached in ACTUAL_DEVICES_PATH.

    Returns:
        str: Path to the device registry file.
    """
    global ACTUAL_DEVICES_PATH

    if ACTUAL_DEVICES_PATH is not None:
        return ACTUAL_DEVICES_PATH

    default_path = _default_devices_path()
    devices_path = default_path

    override = os.getenv("UPRO_DEVICES_PATH")
    if override:
        if os.path.exists(override) and os.access(override, os.R_OK):
            devices_path = override
        else:
            module_logger.warning(
                f"Override device registry path '{override}' is missing or unreadable. "
                f"Using bundled default: '{default_path}'"
            )

    ACTUAL_DEVICES_PATH = devices_path
    module_logger.info(f"Device registry file in use: {ACTUAL_DEVICES_PATH}")
    return ACTUAL_DEVICES_PATH


def _int_env(name: str, default: int) -> int:
    """Reads a positive integer environment variable, falling back to default with a warning."""
    value_str = os.getenv(name, str(default))
    try:
        value = int(value_str)
    except ValueError:
        module_logger.warning(f"Invalid {name} '{value_str}'. Defaulting to {default}.")
        return default
    if value <= 0:
        module_logger.warning(f"{name} must be positive, got {value}. Defaulting to {default}.")
        return default
    return value


# ── TCP Listener Configuration ─────────────────────────────────────────────
def get_listener_config():
    """
    Retrieves TCP listener settings from environment variables.

    Non-numeric or non-positive port and frame length values fall back to their
    defaults with a warning.

    Returns:
        dict: A dictionary containing:
              - 'enabled': Whether the listener is started with the API.
              - 'host': Address to bind (e.g., '0.0.0.0').
              - 'port': TCP port devices connect to.
              - 'max_frame_length': Largest unterminated frame kept in a connection buffer.
    """
    return {
        "enabled": os.getenv("UPRO_TCP_ENABLED", "true").lower() in TRUE_VALUES,
        "host": os.getenv("UPRO_TCP_HOST", "0.0.0.0"),
        "port": _int_env("UPRO_TCP_PORT", DEFAULT_TCP_PORT),
        "max_frame_length": _int_env("UPRO_MAX_FRAME_LENGTH", DEFAULT_MAX_FRAME_LENGTH),
    }


# ── Decoder Configuration ──────────────────────────────────────────────────
def get_decoder_config():
    """
    Retrieves decoder settings from environment variables.

    Returns:
        dict: A dictionary containing:
              - 'century_base': Added to two-digit years in location dates (2000 -> 20YY).
              - 'register_unknown': Whether unknown device ids are registered on first contact.
    """
    century_str = os.getenv("UPRO_CENTURY_BASE", str(DEFAULT_CENTURY_BASE))
    try:
        century_base = int(century_str)
    except ValueError:
        module_logger.warning(
            f"Invalid UPRO_CENTURY_BASE '{century_str}'. Defaulting to {DEFAULT_CENTURY_BASE}."
        )
        century_base = DEFAULT_CENTURY_BASE
    if century_base % 100 != 0:
        module_logger.warning(
            f"UPRO_CENTURY_BASE {century_base} is not a century boundary. "
            f"Defaulting to {DEFAULT_CENTURY_BASE}."
        )
        century_base = DEFAULT_CENTURY_BASE

    return {
        "century_base": century_base,
        "register_unknown": os.getenv("UPRO_REGISTER_UNKNOWN", "false").lower() in TRUE_VALUES,
    }


# ── FastAPI Configuration ──────────────────────────────────────────────────
def get_fastapi_config():
    """
    Retrieves FastAPI application settings from environment variables.

    Returns:
        dict: A dictionary containing title, server_description, and root_path
              for the FastAPI application.
    """
    return {
        "title": os.getenv("UPRO2API_TITLE", "upro2api"),
        "server_description": os.getenv(
            "UPRO2API_SERVER_DESCRIPTION", "Upro GPS tracker gateway"
        ),
        "root_path": os.getenv("UPRO2API_ROOT_PATH", ""),
    }
