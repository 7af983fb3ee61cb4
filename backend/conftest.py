"""Pytest configuration to expose the backend package for imports.

Also provides the shared fixtures: every test gets a fresh application built
by ``main.create_app`` with the memory storage and blob backends and the
demo accounts seeded, so no test sees another test's writes.
"""

from __future__ import annotations

import pathlib
import sys
from typing import Any

import pytest
from fastapi import testclient

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from gis_viewer import main  # noqa: E402
from gis_viewer.core import config, security  # noqa: E402
from gis_viewer.db import database  # noqa: E402


def make_settings(**overrides: Any) -> config.Settings:
    values: dict[str, Any] = {
        "storage_backend": "memory",
        "blob_backend": "memory",
        "seed_demo_data": True,
        "jwt_secret": "test-secret",
    }
    values.update(overrides)
    return config.Settings(**values)


def bearer(
    settings: config.Settings, user_id: str, email: str, role: str
) -> dict[str, str]:
    token = security.sign_token(
        {"userId": user_id, "email": email, "role": role},
        settings.jwt_secret,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings() -> config.Settings:
    return make_settings()


@pytest.fixture
def app(settings: config.Settings) -> Any:
    return main.create_app(settings)


@pytest.fixture
def client(app: Any) -> testclient.TestClient:
    return testclient.TestClient(app)


@pytest.fixture
def repos(app: Any) -> database.Repositories:
    return app.state.repositories


@pytest.fixture
def admin_headers(settings: config.Settings) -> dict[str, str]:
    return bearer(settings, "admin-001", "admin@example.com", "admin")


@pytest.fixture
def editor_headers(settings: config.Settings) -> dict[str, str]:
    return bearer(settings, "user-001", "editor@example.com", "editor")


@pytest.fixture
def viewer_headers(settings: config.Settings) -> dict[str, str]:
    return bearer(settings, "viewer-001", "viewer@example.com", "viewer")
