import uuid
from typing import AsyncIterator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.backend.main import app
from app.backend.api.auth import get_current_user, get_current_principal
from app.backend.api.utilities.limiter import limiter
from app.backend.config.config import settings
from app.backend.models.db_models import User, Role
from app.backend.modules.access import principal_for

GROUP_ID = uuid.uuid4()


@pytest.fixture(autouse=True)
def signing_key(monkeypatch):
    """Token signing key for the app under test; deployments supply it through SECRET_KEY."""
    monkeypatch.setattr(settings, "SECRET_KEY", "test-signing-key")


@pytest.fixture
def student_user() -> User:
    return User(id=uuid.uuid4(), name="Test Student", email="student@example.com", password="$2b$12$hash", role=Role.STUDENT, group_id=GROUP_ID)

@pytest.fixture
def teacher_user() -> User:
    return User(id=uuid.uuid4(), name="Test Teacher", email="teacher@example.com", password="$2b$12$hash", role=Role.TEACHER)

@pytest.fixture
def admin_user() -> User:
    return User(id=uuid.uuid4(), name="Admin", email="admin@example.com", password="$2b$12$hash", role=Role.SUPER_ADMIN)


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[AsyncClient]:
    """
    HTTP client bound to the ASGI app. The lifespan is not run, so every test
    overrides the dependencies that would need the connection pools.
    """
    limiter.enabled = False
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def login_as():
    """Overrides authentication so requests run as the given user."""
    def _login_as(user: User, assigned_group_ids=()):
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_current_principal] = lambda: principal_for(user, assigned_group_ids)
    return _login_as
