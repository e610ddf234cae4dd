"""Shared test fixtures for pytest.

ENVIRONMENT is pinned to `test` before the application is imported so that
settings never read a local .env file.
"""

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient


os.environ["ENVIRONMENT"] = "test"

from core.config import Settings, get_settings
from dependencies.ai import (
    get_http_client,
    get_project_resolver,
    get_skill_catalog,
)
from main import app
from tests.fixtures.ai_fixtures import make_settings


pytest_plugins = ("tests.fixtures.ai_fixtures",)


@pytest.fixture(autouse=True)
def _isolate_ai_env(monkeypatch):
    """Keep a developer's real provider credentials out of the tests."""
    for name in list(os.environ):
        if name.startswith(("AI_", "ANTHROPIC_", "OPENAI_", "OPENROUTER_")):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def override_app(skill_catalog, project_resolver):
    """Install test collaborators; returns a helper to set settings and upstream."""

    def configure(settings: Settings | None = None, http_client=None) -> None:
        if settings is not None:
            app.dependency_overrides[get_settings] = lambda: settings
        if http_client is not None:
            app.dependency_overrides[get_http_client] = lambda: http_client

    app.dependency_overrides[get_skill_catalog] = lambda: skill_catalog
    app.dependency_overrides[get_project_resolver] = lambda: project_resolver
    configure(make_settings())
    yield configure
    app.dependency_overrides.clear()
