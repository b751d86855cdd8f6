"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

# Keep the notification service in dev mode (log only) under pytest.
os.environ.pop("POSTMARK_SERVER_TOKEN", None)

import pytest

from fastapi.testclient import TestClient
from auth import Actor, token_for_user
from models import UserRole, RateTable
from server import app


@pytest.fixture
def client():
    """TestClient for the main FastAPI app (server:app). The lifespan is not entered, so no MongoDB."""
    return TestClient(app)


@pytest.fixture
def user_actor():
    return Actor(user_id="user-1", email="owner@example.com", role=UserRole.ROLE_USER, name="Owner")


@pytest.fixture
def other_actor():
    return Actor(user_id="user-2", email="other@example.com", role=UserRole.ROLE_USER, name="Other")


@pytest.fixture
def admin_actor():
    return Actor(user_id="admin-1", email="admin@example.com", role=UserRole.ROLE_ADMIN, name="Admin")


@pytest.fixture
def super_admin_actor():
    return Actor(user_id="super-1", email="super@example.com", role=UserRole.ROLE_SUPER_ADMIN, name="Super")


def auth_headers(actor: Actor) -> dict:
    token = token_for_user({
        "user_id": actor.user_id,
        "email": actor.email,
        "role": actor.role.value,
        "name": actor.name,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def rate_table():
    return RateTable(
        rates={"English": 25, "Spanish": 30, "French": 30, "Arabic": 50},
        project_type_multiplier=1.3,
        pm_fee_percent=1.0,
        version=3,
    )
