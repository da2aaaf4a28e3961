import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
import pytest_asyncio

from app.backend.main import app, lifespan
from app.backend.api.auth import create_access_token
from app.backend.api.dependencies import get_db_client, get_redis_client
from app.backend.config.config import settings
from app.backend.models.db_models import User, Role, NotificationType
from app.backend.models.redis_models import UserSessionRedis
from app.backend.tools.passwords import hash_password, verify_password

PASSWORD = "secret123"


@pytest.fixture
def stored_user() -> User:
    return User(
        id=uuid.uuid4(), name="Test Teacher", email="teacher@example.com",
        password=hash_password(PASSWORD), role=Role.TEACHER
    )

@pytest_asyncio.fixture
async def mock_clients(http_client):
    """Replaces the database and Redis clients used by the auth routes."""
    mock_db_client = AsyncMock()
    mock_redis_client = AsyncMock()
    app.dependency_overrides[get_db_client] = lambda: mock_db_client
    app.dependency_overrides[get_redis_client] = lambda: mock_redis_client
    return mock_db_client, mock_redis_client


def session_token(user: User, session_id: uuid.UUID) -> str:
    return create_access_token(
        {"user_id": str(user.id), "session_id": str(session_id), "role": user.role.value},
        timedelta(minutes=5)
    )

def live_session(user: User, session_id: uuid.UUID) -> UserSessionRedis:
    now = datetime.now(timezone.utc)
    return UserSessionRedis(user_id=user.id, session_id=session_id, session_start_time=now, session_end_time=now + timedelta(hours=1))


@pytest.mark.asyncio
class TestLogin:

    async def test_login_success(self, http_client, mock_clients, stored_user):
        """Scenario: Correct credentials create a Redis session and return a token bound to it."""
        mock_db_client, mock_redis_client = mock_clients
        mock_db_client.get_user_by_email.return_value = stored_user

        response = await http_client.post("/api/v1/auth/login", json={"email": "teacher@example.com", "password": PASSWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == str(stored_user.id)
        assert "password" not in data["user"]

        saved_session = mock_redis_client.save_user_session.call_args[0][0]
        payload = jwt.decode(data["token"]["access_token"], settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert payload["user_id"] == str(stored_user.id)
        assert payload["session_id"] == str(saved_session.session_id)
        mock_db_client.update_last_login.assert_called_once_with(stored_user.id)

    async def test_login_wrong_password(self, http_client, mock_clients, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        mock_db_client.get_user_by_email.return_value = stored_user

        response = await http_client.post("/api/v1/auth/login", json={"email": "teacher@example.com", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password."
        mock_redis_client.save_user_session.assert_not_called()

    async def test_oauth2_form_login(self, http_client, mock_clients, stored_user):
        """Scenario: The form based token endpoint takes the email in the username field."""
        mock_db_client, _ = mock_clients
        mock_db_client.get_user_by_email.return_value = stored_user

        response = await http_client.post("/api/v1/auth/token", data={"username": "teacher@example.com", "password": PASSWORD})

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"
        mock_db_client.get_user_by_email.assert_called_once_with("teacher@example.com")

    async def test_login_unknown_email(self, http_client, mock_clients):
        mock_db_client, _ = mock_clients
        mock_db_client.get_user_by_email.return_value = None

        response = await http_client.post("/api/v1/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})

        assert response.status_code == 401

    async def test_login_deactivated_account(self, http_client, mock_clients, stored_user):
        mock_db_client, _ = mock_clients
        mock_db_client.get_user_by_email.return_value = stored_user.model_copy(update={"is_active": False})

        response = await http_client.post("/api/v1/auth/login", json={"email": "teacher@example.com", "password": PASSWORD})

        assert response.status_code == 401
        assert response.json()["detail"] == "Account is deactivated."


@pytest.mark.asyncio
class TestSession:

    async def test_me_with_live_session(self, http_client, mock_clients, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        session_id = uuid.uuid4()
        mock_redis_client.get_user_session.return_value = live_session(stored_user, session_id)
        mock_db_client.get_user_by_id.return_value = stored_user

        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {session_token(stored_user, session_id)}"})

        assert response.status_code == 200
        assert response.json()["email"] == "teacher@example.com"

    async def test_token_of_replaced_session_is_rejected(self, http_client, mock_clients, stored_user):
        """Scenario: Logging in again elsewhere invalidates tokens of the previous session."""
        _, mock_redis_client = mock_clients
        mock_redis_client.get_user_session.return_value = live_session(stored_user, uuid.uuid4())

        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {session_token(stored_user, uuid.uuid4())}"})

        assert response.status_code == 401

    async def test_invalid_token(self, http_client, mock_clients):
        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer thisisafaketoken"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"

    async def test_logout_deletes_the_session(self, http_client, mock_clients, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        session_id = uuid.uuid4()
        mock_redis_client.get_user_session.return_value = live_session(stored_user, session_id)
        mock_db_client.get_user_by_id.return_value = stored_user

        response = await http_client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {session_token(stored_user, session_id)}"})

        assert response.status_code == 204
        mock_redis_client.delete_user_session.assert_called_once_with(stored_user.id)


@pytest.mark.asyncio
class TestPasswords:

    async def test_change_password(self, http_client, mock_clients, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        session_id = uuid.uuid4()
        mock_redis_client.get_user_session.return_value = live_session(stored_user, session_id)
        mock_db_client.get_user_by_id.return_value = stored_user

        response = await http_client.post(
            "/api/v1/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "n3w-secret"},
            headers={"Authorization": f"Bearer {session_token(stored_user, session_id)}"}
        )

        assert response.status_code == 204
        user_id, new_hash = mock_db_client.update_password.call_args[0]
        assert user_id == stored_user.id
        assert verify_password("n3w-secret", new_hash)
        assert mock_db_client.add_notification.call_args.kwargs["type"] == NotificationType.PASSWORD_CHANGED

    async def test_change_password_with_wrong_current_password(self, http_client, mock_clients, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        session_id = uuid.uuid4()
        mock_redis_client.get_user_session.return_value = live_session(stored_user, session_id)
        mock_db_client.get_user_by_id.return_value = stored_user

        response = await http_client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "wrong", "new_password": "n3w-secret"},
            headers={"Authorization": f"Bearer {session_token(stored_user, session_id)}"}
        )

        assert response.status_code == 400
        mock_db_client.update_password.assert_not_called()

    async def test_reset_password_requires_super_admin(self, http_client, mock_clients, login_as, teacher_user):
        login_as(teacher_user)

        response = await http_client.post("/api/v1/auth/reset-password", json={"user_id": str(uuid.uuid4()), "new_password": "n3w-secret"})

        assert response.status_code == 403

    async def test_reset_password_ends_the_users_session(self, http_client, mock_clients, login_as, admin_user, stored_user):
        mock_db_client, mock_redis_client = mock_clients
        login_as(admin_user)
        mock_db_client.get_user_by_id.return_value = stored_user

        response = await http_client.post("/api/v1/auth/reset-password", json={"user_id": str(stored_user.id), "new_password": "n3w-secret"})

        assert response.status_code == 204
        mock_redis_client.delete_user_session.assert_called_once_with(stored_user.id)


@pytest.mark.asyncio
async def test_health(http_client):
    response = await http_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_startup_requires_a_signing_key(monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", None)

    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        async with lifespan(app):
            pass
