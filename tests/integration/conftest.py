"""Integration test fixtures for the Proctor API.

Builds the real FastAPI app with the Drive store, Sheets registry and
settings swapped through ``app.dependency_overrides``.
"""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from proctor.api.app import create_app
from proctor.api.dependencies import get_object_store, get_passcode_registry
from proctor.core.config import get_settings
from proctor.services.storage.sheets import PasscodeRegistry


@pytest.fixture
def registry():
    """Passcode registry mock that accepts every passcode."""
    mock = AsyncMock(spec=PasscodeRegistry)
    mock.contains.return_value = True
    return mock


@pytest.fixture
def app(store, registry, settings):
    """Create a fresh FastAPI application wired to the in-memory store."""
    application = create_app()
    application.dependency_overrides[get_object_store] = lambda: store
    application.dependency_overrides[get_passcode_registry] = lambda: registry
    application.dependency_overrides[get_settings] = lambda: settings
    return application


@pytest.fixture
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
