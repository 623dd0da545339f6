import os

import pytest
from fastapi.testclient import TestClient

# The TCP listener is exercised directly in test_tcp_manager; keep the app from binding a port.
os.environ.setdefault("UPRO_TCP_ENABLED", "false")

from common.models import DeviceSession  # noqa: E402
from core_daemon import app_state  # noqa: E402
from core_daemon.device_registry import DeviceRegistry  # noqa: E402
from core_daemon.main import app  # noqa: E402
from tests.frames import DEVICE_ID, DEVICE_UNIQUE_ID  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Synchronous TestClient fixture for FastAPI.
    Use this for standard API endpoint testing.
    """
    with TestClient(app=app, base_url="http://test") as c:
        yield c


@pytest.fixture
def registry() -> DeviceRegistry:
    """Registry holding the single demo tracker used by tests.frames."""
    return DeviceRegistry(
        [DeviceSession(device_id=DEVICE_ID, unique_id=DEVICE_UNIQUE_ID, name="Test tracker")]
    )


@pytest.fixture
def installed_registry(registry) -> DeviceRegistry:
    """Installs the test registry and a default decoder into app_state."""
    app_state.initialize_app_from_config(
        registry, {"century_base": 2000, "register_unknown": False}
    )
    return registry


# --- Global state reset fixtures for test isolation ---


@pytest.fixture(autouse=True)
def reset_app_state_globals():
    """
    Automatically reset the stored positions in app_state before each test.
    Ensures test isolation for all tests using app_state.
    """
    app_state.latest_positions.clear()
    app_state.history.clear()
