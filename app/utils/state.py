import logging
from typing import TypedDict

import redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.utils.config import Settings
from app.types.clock import Clock
from app.types.sqlalchemy import SessionLocalType
from app.utils.communication.notifications import NotificationManager
from app.utils.locks import BayLockManager


class LifespanState(TypedDict):
    """
    The LifespanState is contained instead of the FastAPI app. Use dependencies to access it
    """

    # Database engine
    engine: AsyncEngine
    # Database session creator
    SessionLocal: SessionLocalType
    # We may not have a Redis Client if it was not configured
    redis_client: redis.Redis | None
    notification_manager: NotificationManager
    # Per bay serialization point, shared by all the requests of the worker
    bay_lock_manager: BayLockManager
    clock: Clock


class RuntimeLifespanState(LifespanState):
    """
    Requests contains an extended version of the LifespanState for each request.
    """

    request_id: str


def init_engine(settings: Settings) -> AsyncEngine:
    """
    Return the (asynchronous) database engine
    """

    if settings.SQLITE_DB:
        SQLALCHEMY_DATABASE_URL = f"sqlite+aiosqlite:///./{settings.SQLITE_DB}"
    else:
        SQLALCHEMY_DATABASE_URL = f"postgresql+asyncpg://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}@{settings.POSTGRES_HOST}/{settings.POSTGRES_DB}"

    return create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        echo=settings.DATABASE_DEBUG,
    )


def init_SessionLocal(engine: AsyncEngine) -> SessionLocalType:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def init_redis_client(
    settings: Settings,
    bayplan_error_logger: logging.Logger,
) -> redis.Redis | None:
    """
    Initialize the Redis client if the settings specify a Redis connection.
    Returns None if Redis is not configured.
    """
    redis_client: redis.Redis | None = None
    if settings.REDIS_HOST:
        try:
            redis_client = redis.Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                password=settings.REDIS_PASSWORD,
                socket_keepalive=True,
            )
            redis_client.ping()  # Test the connection
        except redis.exceptions.ConnectionError:
            bayplan_error_logger.exception(
                "Redis connection error: Check the Redis configuration or the Redis server",
            )
            redis_client = None
    return redis_client


def disconnect_redis_client(redis_client: redis.Redis | None) -> None:
    if redis_client is not None:
        redis_client.close()


def init_bay_lock_manager(settings: Settings) -> BayLockManager:
    return BayLockManager(timeout=settings.BAY_LOCK_TIMEOUT_SECONDS)
