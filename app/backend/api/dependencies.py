#app/backend/api/dependencies.py
from fastapi import Request, Depends
import redis.asyncio as redis
import asyncpg

from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..services.notification_service import NotificationService
from ..services.diary_service import DiaryService
from ..services.attendance_service import AttendanceService
from ..services.admin_service import AdminService


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """Returns the Redis connection pool created in the application lifespan."""
    return request.app.state.redis_pool

def get_postgres_pool(request: Request) -> asyncpg.Pool:
    """Returns the PostgreSQL connection pool created in the application lifespan."""
    return request.app.state.postgres_pool


def get_redis_client(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisClient:
    return RedisClient(pool=redis_pool)

def get_db_client(postgres_pool: asyncpg.Pool = Depends(get_postgres_pool)) -> AsyncPostgresClient:
    return AsyncPostgresClient(pool=postgres_pool)


def get_notification_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> NotificationService:
    """
    Builds a fresh service per request on top of the shared pools. The same
    pattern is used for every service below.
    """
    return NotificationService(db_client=db_client)

def get_diary_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    notification_service: NotificationService = Depends(get_notification_service)
) -> DiaryService:
    return DiaryService(db_client=db_client, notification_service=notification_service)

def get_attendance_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> AttendanceService:
    return AttendanceService(db_client=db_client)

def get_admin_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> AdminService:
    return AdminService(db_client=db_client)
