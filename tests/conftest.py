"""Pytest configuration and shared fixtures."""

import httpx
import pytest
import respx

from strava_bridge.config import BridgeConfig
from strava_bridge.server import create_app
from strava_bridge.session import SessionManager
from strava_bridge.store import InMemoryCredentialStore
from tests.helpers import BASE_URL, VERIFY_TOKEN, FakeClock
from tests.stubs.strava_api_stub import StravaAPIStubber


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep a developer's .env and STRAVA_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "STRAVA_REDIRECT_URI",
        "STRAVA_WEBHOOK_VERIFY_TOKEN",
        "STRAVA_OAUTH_SCOPES",
        "STRAVA_BRIDGE_DASHBOARD_URL",
        "STRAVA_SESSION_BACKEND",
        "POKE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    """Provide a bridge configuration for testing."""
    return BridgeConfig(
        strava_client_id="test_client_id",
        strava_client_secret="test_client_secret",
        strava_webhook_verify_token=VERIFY_TOKEN,
        strava_bridge_base_url=BASE_URL,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCredentialStore(clock=clock)


@pytest.fixture
def sessions(store, clock):
    return SessionManager(
        store,
        client_id="test_client_id",
        client_secret="test_client_secret",
        clock=clock,
    )


@pytest.fixture
def respx_mock():
    """Provide a respx mock router for outbound HTTP requests."""
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def stub_api(respx_mock):
    """Provide a Strava API stubber."""
    return StravaAPIStubber(respx_mock)


@pytest.fixture
def app(config, store):
    return create_app(config, store)


@pytest.fixture
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as client:
        yield client
