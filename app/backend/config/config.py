import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Settings read straight from environment variables.
    """
    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL")

    # Redis: login sessions and rate limiter storage
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL", "memory://")

    # JWT and sessions
    SECRET_KEY: str = os.environ.get("SECRET_KEY")
    ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))
    SESSION_TTL_SECONDS: int = int(os.environ.get("SESSION_TTL_SECONDS", 60 * 60 * 24 * 7))
    PASSWORD_MIN_LENGTH: int = int(os.environ.get("PASSWORD_MIN_LENGTH", 6))

    # Background jobs
    DIARY_REMINDER_HOUR: int = int(os.environ.get("DIARY_REMINDER_HOUR", 9))
    DIARY_REMINDER_MINUTE: int = int(os.environ.get("DIARY_REMINDER_MINUTE", 0))
    NOTIFICATION_CLEANUP_INTERVAL_HOURS: int = int(os.environ.get("NOTIFICATION_CLEANUP_INTERVAL_HOURS", 6))
    SCHEDULER_ENABLED: bool = os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")

    CORS_ORIGINS: list = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# Single importable settings instance
settings = Config()
