import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import jwt
from pydantic import ValidationError

from .schemas.user import (
    Token, TokenData, LoginRequest, UserResponse, LoginResponse,
    ChangePasswordRequest, ResetPasswordRequest,
)
from ..models.db_models import User, Role, NotificationType, NotificationPriority
from ..models.redis_models import UserSessionRedis
from ..modules.access import Principal, principal_for
from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..services.notification_service import NotificationService
from ..tools.passwords import hash_password, verify_password
from ..config.config import settings
from .dependencies import get_redis_client, get_db_client, get_notification_service
from .utilities.limiter import limiter
from .utilities.roles import verify_role

logger = logging.getLogger(__name__)

# --- Router and security setup ---
router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


# --- Helpers ---
def create_access_token(data: dict, expires_delta: timedelta):
    """Signs a JWT carrying ``data`` that expires after ``expires_delta``."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def _validate_new_password(password: str):
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"New password must be at least {settings.PASSWORD_MIN_LENGTH} characters long."
        )


# --- Dependencies for protected routes ---
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    redis_client: RedisClient = Depends(get_redis_client),
    db_client: AsyncPostgresClient = Depends(get_db_client)
) -> User:
    """
    Decodes the token, checks that it belongs to the user's live Redis session
    and returns the current user row. Logging out, logging in elsewhere or a
    deactivated account all invalidate older tokens.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData.model_validate(payload)
    except (jwt.PyJWTError, ValidationError) as e:
        logger.warning(f"Token validation error: {e}")
        raise credentials_exception

    if token_data.user_id is None or token_data.session_id is None:
        logger.warning("Token is valid but missing 'user_id' or 'session_id'.")
        raise credentials_exception

    user_session = await redis_client.get_user_session(token_data.user_id)
    if user_session is None or user_session.session_id != token_data.session_id:
        logger.warning(f"User '{token_data.user_id}' has a valid token but no matching session in Redis. Denying access.")
        raise credentials_exception

    user = await db_client.get_user_by_id(token_data.user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user


async def get_current_principal(
    user: User = Depends(get_current_user),
    db_client: AsyncPostgresClient = Depends(get_db_client)
) -> Principal:
    """Snapshot of the caller's role and group affiliations for this request."""
    assigned_group_ids = []
    if user.role == Role.TEACHER:
        assigned_group_ids = await db_client.get_teacher_group_ids(user.id)
    return principal_for(user, assigned_group_ids)


# --- Login ---

async def _perform_login(email: str, password: str, db_client: AsyncPostgresClient, redis_client: RedisClient) -> LoginResponse:
    logger.info(f"Login attempt for '{email}'.")

    user = await db_client.get_user_by_email(email)
    if not user or not user.password or not verify_password(password, user.password):
        logger.warning(f"Login failed for '{email}' (invalid credentials).")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated.")

    try:
        ttl = settings.SESSION_TTL_SECONDS
        now = datetime.now(timezone.utc)
        redis_session = UserSessionRedis(
            user_id=user.id, session_id=uuid4(),
            session_start_time=now, session_end_time=now + timedelta(seconds=ttl)
        )
        await redis_client.save_user_session(redis_session, ttl=ttl)
        await db_client.update_last_login(user.id)
    except Exception as e:
        logger.error(f"Unexpected error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected server error occurred during login.")

    token_payload = {"user_id": str(user.id), "session_id": str(redis_session.session_id), "role": user.role.value}
    expires = min(timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES), timedelta(seconds=ttl))
    access_token = create_access_token(data=token_payload, expires_delta=expires)

    logger.info(f"User '{user.id}' ({user.role.value}) logged in successfully.")
    return LoginResponse(
        token=Token(access_token=access_token, token_type="bearer"),
        user=UserResponse.model_validate(user.model_dump())
    )


# --- API endpoints ---

@router.post("/token", response_model=Token)
@limiter.limit("30/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db_client: AsyncPostgresClient = Depends(get_db_client),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Standard OAuth2 endpoint for Swagger UI. The username field carries the email."""
    login_response = await _perform_login(form_data.username, form_data.password, db_client, redis_client)
    return login_response.token


@router.post("/login", response_model=LoginResponse)
@limiter.limit("30/minute")
async def login(
    request: Request,
    login_request: LoginRequest,
    db_client: AsyncPostgresClient = Depends(get_db_client),
    redis_client: RedisClient = Depends(get_redis_client)
):
    return await _perform_login(login_request.email, login_request.password, db_client, redis_client)


@router.get("/me", response_model=UserResponse)
@limiter.limit("120/minute")
async def read_me(request: Request, current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def change_password(
    request: Request,
    change_request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notification_service: NotificationService = Depends(get_notification_service)
):
    if not current_user.password or not verify_password(change_request.current_password, current_user.password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect.")
    _validate_new_password(change_request.new_password)

    await db_client.update_password(current_user.id, hash_password(change_request.new_password))
    logger.info(f"User '{current_user.id}' changed their password.")

    try:
        await notification_service.create_notification(
            user_id=current_user.id,
            type=NotificationType.PASSWORD_CHANGED,
            title="Password Changed",
            message="Your password has been changed successfully. If you didn't make this change, please contact support.",
            priority=NotificationPriority.HIGH,
        )
    except Exception:
        logger.error(f"Failed to send password change notification to '{current_user.id}'.", exc_info=True)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def reset_password(
    request: Request,
    reset_request: ResetPasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db_client: AsyncPostgresClient = Depends(get_db_client),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Super admin sets a new password for any user and ends that user's session."""
    verify_role(principal, Role.SUPER_ADMIN)
    _validate_new_password(reset_request.new_password)

    user = await db_client.get_user_by_id(reset_request.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    await db_client.update_password(user.id, hash_password(reset_request.new_password))
    await redis_client.delete_user_session(user.id)
    logger.info(f"Password of user '{user.id}' reset by '{principal.user_id}'.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def logout(
    request: Request,
    redis_client: RedisClient = Depends(get_redis_client),
    current_user: User = Depends(get_current_user)
):
    """User logout, deletes the session from Redis."""
    logger.info(f"User '{current_user.id}' logging out.")
    try:
        await redis_client.delete_user_session(current_user.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception:
        logger.error(f"Error during logout for user '{current_user.id}'.", exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred during logout.")
