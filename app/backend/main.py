# app/backend/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import redis.asyncio as redis
import asyncpg
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import auth, diary, notifications, attendance, users, groups, programs
from .db.db_client import AsyncPostgresClient, init_connection
from .services.errors import ServiceError
from .tasks.scheduler import NotificationScheduler
from .api.utilities.limiter import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the connection pools and starts the notification scheduler on
    startup; tears them down in reverse order on shutdown.
    """
    if not settings.SECRET_KEY:
        raise RuntimeError("SECRET_KEY is not set; refusing to start without a token signing key.")

    setup_logging()
    logger.info("Application starting...")

    app.state.postgres_pool = None
    app.state.redis_pool = None
    app.state.scheduler = None

    try:
        postgres_pool = await asyncpg.create_pool(
            dsn=settings.DATABASE_URL, min_size=5, max_size=20, init=init_connection
        )
        redis_pool = redis.ConnectionPool.from_url(
            settings.APPLICATION_REDIS_URL, decode_responses=True
        )
        app.state.postgres_pool = postgres_pool
        app.state.redis_pool = redis_pool
        logger.info("PostgreSQL and Redis connection pools created.")

        if settings.SCHEDULER_ENABLED:
            scheduler = NotificationScheduler(db_client=AsyncPostgresClient(pool=postgres_pool))
            scheduler.start()
            app.state.scheduler = scheduler

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)

    yield

    logger.info("Application shutting down...")
    if app.state.scheduler:
        app.state.scheduler.shutdown()
    if app.state.postgres_pool:
        await app.state.postgres_pool.close()
        logger.info("PostgreSQL connection pool closed.")
    if app.state.redis_pool:
        await app.state.redis_pool.disconnect()
        logger.info("Redis connection pool closed.")


app = FastAPI(
    title="Internship Tracker API",
    description="Internship programs, daily diaries, attendance and notifications.",
    version="1.0.0",
    lifespan=lifespan
)
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"Unhandled service error on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(ServiceError, service_error_handler)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(diary.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(attendance.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(groups.router, prefix="/api/v1")
app.include_router(programs.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Liveness probe."""
    return {"status": "ok", "message": "Internship Tracker API is running."}
