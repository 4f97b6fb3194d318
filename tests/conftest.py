"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-with-enough-length")
os.environ.setdefault("INVITATION_SWEEP_ENABLED", "false")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")

from tests.factories import RecordingEventBus, World, seed_world  # noqa: E402
from tests.fakes import FakeSupabaseClient  # noqa: E402

SUPABASE_CLIENT_MODULES = [
    "src.core.supabase",
    "src.services.limit_policy",
    "src.services.role_service",
    "src.services.permission_service",
    "src.services.session_service",
    "src.services.user_service",
    "src.services.invitation_service",
    "src.services.company_service",
]


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> FakeSupabaseClient:
    """Provide an empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    """Provide an event bus that records published events."""
    return RecordingEventBus()


@pytest.fixture
def world(fake_db: FakeSupabaseClient) -> World:
    """Provide a seeded tenant backed by the in-memory client."""
    return seed_world(fake_db)


@pytest.fixture
def patched_backend(
    fake_db: FakeSupabaseClient,
    event_bus: RecordingEventBus,
) -> Generator[FakeSupabaseClient, None, None]:
    """Route every get_supabase_client() to the fake and the global bus to the recorder.

    Yields:
        FakeSupabaseClient: The in-memory client the app will use.
    """
    from src.core.rate_limiter import get_rate_limiter

    patchers = [patch(f"{module}.get_supabase_client", return_value=fake_db) for module in SUPABASE_CLIENT_MODULES]
    patchers.append(patch("src.core.events._event_bus", event_bus))
    for patcher in patchers:
        patcher.start()
    get_rate_limiter().reset()

    yield fake_db

    for patcher in reversed(patchers):
        patcher.stop()
    get_rate_limiter().reset()


@pytest.fixture
def client(patched_backend: FakeSupabaseClient) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        patched_backend: In-memory backend fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
