"""
Pytest configuration and fixtures for testing.

Every test gets its own application instance, and with it its own
connection manager.
"""

import time

import pytest
from fastapi.testclient import TestClient

from tests.mocks.websocket_mocks import create_mock_connection_manager


@pytest.fixture
def app():
    """
    Provides a fresh relay application.

    Returns:
        FastAPI: Application with an empty connection manager.
    """
    from relay import application

    return application()


@pytest.fixture
def client(app):
    """
    Provides a test client running the application lifespan.

    WebSocket sessions opened from this client share its event loop with
    the HTTP requests.

    Yields:
        TestClient: Client bound to the app fixture.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_manager(app):
    """
    Replaces the connection manager dependency with a mock.

    Yields:
        MagicMock: Mocked ConnectionManager used by the webhook endpoint.
    """
    from relay.dependencies import get_connection_manager

    manager = create_mock_connection_manager()
    app.dependency_overrides[get_connection_manager] = lambda: manager
    yield manager
    app.dependency_overrides.clear()


@pytest.fixture
def webhook_payload():
    """Provides a webhook payload that is relayed."""
    return {
        "message": {"text": "hi"},
        "from": "6281234:5@s.whatsapp.net",
        "pushName": "Budi",
    }


def wait_for_subscribers(manager, expected: int, timeout: float = 2.0) -> None:
    """
    Block until the manager holds `expected` subscribers.

    Registration happens in the application's event loop right after the
    WebSocket handshake, so it may lag behind `websocket_connect` returning.
    """
    deadline = time.monotonic() + timeout
    while manager.count != expected:
        if time.monotonic() > deadline:
            raise AssertionError(
                f"expected {expected} subscribers, found {manager.count}"
            )
        time.sleep(0.01)
