"""
Fixtures for exercising the assembled HTTP and live channel surface.
"""
import logging

import pytest
from fastapi.testclient import TestClient

from nearhelp.main import create_app

from tests.conftest import ADMIN_EMAIL


@pytest.fixture
def client(config_manager):
    """TestClient running the application lifespan against a temp database."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level

    with TestClient(create_app(config_manager)) as test_client:
        yield test_client

    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def register(client):
    """Register a user and return (auth headers, token, user profile)."""
    def _register(name, email=None, password="password123", skills=None):
        response = client.post("/api/auth/register", json={
            "name": name,
            "email": email or f"{name.lower()}@example.com",
            "password": password,
            "skills": skills or [],
        })
        assert response.status_code == 201, response.text
        body = response.json()
        return {"Authorization": f"Bearer {body['token']}"}, body['token'], body['user']
    return _register


@pytest.fixture
def admin(register):
    return register("Admin", email=ADMIN_EMAIL)
