#!/usr/bin/env python3
"""
Main entry point and central orchestrator for the upro2api daemon.

This script initializes and runs the FastAPI application that receives Upro GPS
tracker frames over TCP and exposes the decoded positions through a web API.

Key responsibilities include:
- Configuring application-wide logging.
- Loading the device registry and decoder configuration.
- Initializing shared application state (see app_state.py).
- Starting the TCP listener devices report to (see tcp_manager.py), whose frames are
  decoded and stored by frame_processing.py.
- Initializing the FastAPI application, including:
    - Setting up Prometheus metrics middleware.
    - Registering API routers (positions, status).
    - Defining startup and shutdown handling.
- Providing a command-line interface to start the Uvicorn server.
"""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import ResponseValidationError
from fastapi.responses import PlainTextResponse

from core_daemon.app_state import initialize_app_from_config
from core_daemon.config import (
    configure_logger,
    get_decoder_config,
    get_device_registry_path,
    get_fastapi_config,
    get_listener_config,
)
from core_daemon.device_registry import load_device_registry
from core_daemon.middleware import prometheus_http_middleware
from core_daemon.tcp_manager import start_tcp_listener

from .api_routers.positions import api_router_positions
from .api_routers.status import api_router_status

# ── Logging ──────────────────────────────────────────────────────────────────
logger = configure_logger()

logger.info("upro2api starting up...")

# ── Load device registry & decoder settings ──────────────────────────────────
decoder_config = get_decoder_config()
device_registry = load_device_registry(
    get_device_registry_path(), register_unknown=decoder_config["register_unknown"]
)
initialize_app_from_config(device_registry, decoder_config)


def create_app():
    # ── FastAPI setup ──────────────────────────────────────────────────────────
    fastapi_config = get_fastapi_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup ---
        listener_config = get_listener_config()
        app.state.tcp_server = None
        if listener_config["enabled"]:
            app.state.tcp_server = await start_tcp_listener(
                listener_config["host"],
                listener_config["port"],
                max_frame_length=listener_config["max_frame_length"],
            )
        else:
            logger.info("TCP listener disabled by configuration.")
        yield
        # --- Shutdown ---
        if app.state.tcp_server is not None:
            app.state.tcp_server.close()
            await app.state.tcp_server.wait_closed()
        logger.info("upro2api shutting down...")

    app = FastAPI(
        title=fastapi_config["title"],
        servers=[{"url": "/", "description": fastapi_config["server_description"]}],
        root_path=fastapi_config["root_path"],
        lifespan=lifespan,
    )

    # ── Middleware ─────────────────────────────────────────────────────────────
    @app.middleware("http")
    async def prometheus_middleware_handler(request, call_next):
        """Prometheus metrics middleware for HTTP requests."""
        return await prometheus_http_middleware(request, call_next)

    # ── Exception Handlers ─────────────────────────────────────────────────────
    @app.exception_handler(ResponseValidationError)
    async def validation_exception_handler(request, exc):
        """Handles response validation errors with a plain text message."""
        return PlainTextResponse(f"Validation error: {exc}", status_code=500)

    # ── API Routers ────────────────────────────────────────────────────────────
    app.include_router(api_router_positions, prefix="/api")
    app.include_router(api_router_status, prefix="/api")

    return app


app = create_app()


# ── Entrypoint ─────────────────────────────────────────────────────────────
def main():
    """
    Main function to run the Uvicorn server for the upro2api application.

    Retrieves host, port, and log level from environment variables or defaults,
    then starts the Uvicorn server.
    """
    host = os.getenv("UPRO2API_HOST", "0.0.0.0")
    port = int(os.getenv("UPRO2API_PORT", "8000"))
    log_level = os.getenv("UPRO2API_LOG_LEVEL", "info").lower()

    logger.info(f"Starting Uvicorn server on {host}:{port} with log level '{log_level}'")
    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    main()
