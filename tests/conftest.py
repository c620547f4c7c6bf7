"""
Pytest configuration and shared fixtures for session auth tests.
"""
import logging
from unittest.mock import AsyncMock

import pytest
import structlog

from core.config.settings import AuthFlowSettings, SessionSettings
from services.session_auth.events import SessionChangeEmitter
from services.session_auth.session_store import SessionStore
from services.session_auth.token_client import TokenClient
from tests.mocks.session_auth_fakes import STORAGE_KEY, FakeAcceptor, RecordingSecretStore


@pytest.fixture
def secret_store():
    return RecordingSecretStore()


@pytest.fixture
def session_store(secret_store):
    return SessionStore(secret_store, STORAGE_KEY)


@pytest.fixture
def emitter():
    return SessionChangeEmitter()


@pytest.fixture
def event_collector(emitter):
    """Collect emitted change events for testing."""
    collected = []
    emitter.subscribe(collected.append)
    return collected


@pytest.fixture
def token_client():
    client = AsyncMock(spec=TokenClient)
    client.validate.return_value = True
    return client


@pytest.fixture
def flow_settings():
    return AuthFlowSettings(login_page_url="https://login.example.com/login", timeout_seconds=2)


@pytest.fixture
def session_settings():
    return SessionSettings(session_lifetime_hours=None)


@pytest.fixture
def acceptor():
    return FakeAcceptor()


@pytest.fixture
def reset_logging():
    """Undo global logging configuration made by a test."""
    import core.logging as core_logging

    core_logging._logging_configured = False
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_session_auth_handler", False):
            root.removeHandler(handler)
    structlog.reset_defaults()
    core_logging._logging_configured = False
