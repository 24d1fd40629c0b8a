"""
Pytest configuration and fixtures for sf-frontdoor tests.

Unit tests never start a browser or touch the network: pages are mocks
and HTTP goes through httpx.MockTransport.
"""

import asyncio
import os
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from frontdoor.config.settings import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached; reset them so monkeypatched env vars apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture
def instance_url():
    return "https://org.my.salesforce.com/"


@pytest.fixture
def access_token():
    return "00Dxx!TOKEN"


class ControllablePage:
    """
    Stand-in for a Playwright page whose post-login redirect is triggered
    by the test.
    """

    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.goto = AsyncMock()
        self.reached_post_login = asyncio.Event()
        self.wait_for_url_calls = 0
        self.wait_for_url_cancelled = False

    def land_on(self, url: str) -> None:
        self.url = url
        self.reached_post_login.set()

    async def wait_for_url(self, predicate, timeout: Optional[float] = None) -> None:
        self.wait_for_url_calls += 1
        try:
            while True:
                await self.reached_post_login.wait()
                if predicate(self.url):
                    return
                self.reached_post_login.clear()
        except asyncio.CancelledError:
            self.wait_for_url_cancelled = True
            raise


@pytest.fixture
def page():
    """Controllable mock page."""
    return ControllablePage()


class PendingDetector:
    """Error detector that only settles when told to."""

    def __init__(self):
        self.settled = asyncio.Event()
        self.error: Optional[Exception] = None
        self.calls = 0
        self.cancelled = False

    def fail(self, error: Exception) -> None:
        self.error = error
        self.settled.set()

    async def __call__(self, page: Any) -> None:
        self.calls += 1
        try:
            await self.settled.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error


@pytest.fixture
def error_detector():
    """Error detector settled manually by the test."""
    return PendingDetector()


class FakeConnection:
    """Connection exposing only the members passed in."""

    def __init__(self, instance_url: Optional[str] = "https://org.my.salesforce.com", **members: Any):
        self.instance_url = instance_url
        self.query = Mock(return_value={"totalSize": 1, "done": True, "records": []})
        self.refresh_auth = Mock()
        for name, value in members.items():
            setattr(self, name, value)


@pytest.fixture
def make_connection():
    """Factory for fake connections."""
    return FakeConnection


@pytest.fixture
def token_response() -> Dict[str, Any]:
    """OAuth refresh-token grant response."""
    return {
        "access_token": "00Dxx!REFRESHED",
        "instance_url": "https://org2.my.salesforce.com",
        "id": "https://login.salesforce.com/id/00Dxx0000000001/005xx0000000001",
        "token_type": "Bearer",
        "issued_at": "1700000000000",
        "signature": "c2lnbmF0dXJl",
    }


# Pytest markers for different test types
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "requires_browser: Tests that need a real browser")
