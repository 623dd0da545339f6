"""
Integration tests for the upro2api application.

These tests drive frames through the real pipeline: a TCP listener bound to a
free local port, the shared frame decoder and app_state, and finally the HTTP API
served by the FastAPI TestClient.
"""

import asyncio

import pytest

from core_daemon import app_state
from core_daemon.tcp_manager import start_tcp_listener
from tests.frames import DEVICE_ID, EXPECTED_LATITUDE, FULL_FRAME, frame, location


async def send_frames(*frames: str) -> list:
    """Sends frames to a fresh listener using app_state's decoder and returns the replies."""
    server = await start_tcp_listener("127.0.0.1", 0)
    host, port = server.sockets[0].getsockname()[:2]
    replies = []
    try:
        reader, writer = await asyncio.open_connection(host, port)
        for message in frames:
            writer.write(message.encode("ascii"))
            await writer.drain()
            replies.append(await asyncio.wait_for(reader.readuntil(b"#"), timeout=5))
        writer.close()
        await writer.wait_closed()
    finally:
        server.close()
        await server.wait_closed()
    return replies


def test_healthz_endpoint(client):
    response = client.get("/api/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_frame_over_tcp_is_served_by_api(client, installed_registry):
    replies = asyncio.run(send_frames(FULL_FRAME))
    assert replies == [b"*MG20YBA#"]

    response = client.get(f"/api/positions/{DEVICE_ID}")
    assert response.status_code == 200
    body = response.json()
    assert body["latitude"] == pytest.approx(EXPECTED_LATITUDE)
    assert body["attributes"]["cid"] == 512
    assert client.get("/api/readyz").status_code == 200


def test_history_over_tcp(client, installed_registry):
    asyncio.run(
        send_frames(
            frame(location(date="111016")),
            frame(location(date="121016")),
            frame(location(flags=6, date="101016")),
        )
    )

    latest = client.get(f"/api/positions/{DEVICE_ID}").json()
    assert latest["time"].startswith("2016-10-12")

    history = client.get(f"/api/positions/{DEVICE_ID}/history").json()
    assert [p["valid"] for p in history] == [True, True, False]
    assert len(app_state.history[DEVICE_ID]) == 3
