"""Shared fixtures for the portfolio chat API tests."""

import pytest
from fastapi.testclient import TestClient

from api.deps import get_settings, get_supabase_async_client
from backend.main import create_app
from backend.settings import Settings

ALLOWED_ORIGIN = "https://plonguo.com"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        allowed_origins=[ALLOWED_ORIGIN, "https://www.plonguo.com"],
        github_repo="PlonGuo/Responsive-personal-portfolio",
        _env_file=None,
    )


@pytest.fixture
def app(test_settings):
    app = create_app(settings=test_settings)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_supabase_async_client] = lambda: None
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(app) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop it saw."""
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None

