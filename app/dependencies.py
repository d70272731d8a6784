"""
Various FastAPI [dependencies](https://fastapi.tiangolo.com/tutorial/dependencies/)

They are used in endpoints function signatures. For example:
```python
async def get_bays(db: AsyncSession = Depends(get_db)):
```
"""

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated, cast

import redis
import starlette
import starlette.datastructures
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import schemas_auth
from app.core.utils import security
from app.core.utils.config import Settings, construct_prod_settings
from app.types.clock import Clock, SystemClock
from app.types.exceptions import InvalidAppStateTypeError
from app.utils.auth import auth_utils
from app.utils.communication.notifications import NotificationManager, NotificationTool
from app.utils.locks import BayLockManager
from app.utils.state import (
    LifespanState,
    RuntimeLifespanState,
    disconnect_redis_client,
    init_bay_lock_manager,
    init_engine,
    init_redis_client,
    init_SessionLocal,
)

bayplan_access_logger = logging.getLogger("bayplan.access")
bayplan_error_logger = logging.getLogger("bayplan.error")


async def init_app_state(
    app: FastAPI,
    settings: Settings,
    bayplan_error_logger: logging.Logger,
) -> LifespanState:
    """
    Initialize the state of the application. This dependency should be used at the start of the application lifespan.

    This methode should be called as a dependency, and test may override it to provide their own state.
    ```python
    state = app.dependency_overrides.get(
        init_app_state,
        init_app_state,
    )(
        app=app,
        settings=settings,
        bayplan_error_logger=bayplan_error_logger,
    )
    state = cast("LifespanState", state)
    ```
    """
    engine = init_engine(settings=settings)

    SessionLocal = init_SessionLocal(engine)

    redis_client = init_redis_client(
        settings=settings,
        bayplan_error_logger=bayplan_error_logger,
    )

    notification_manager = NotificationManager(settings=settings)

    bay_lock_manager = init_bay_lock_manager(settings=settings)

    return LifespanState(
        engine=engine,
        SessionLocal=SessionLocal,
        redis_client=redis_client,
        notification_manager=notification_manager,
        bay_lock_manager=bay_lock_manager,
        clock=SystemClock(),
    )


async def disconnect_state(
    state: LifespanState,
    bayplan_error_logger: logging.Logger,
) -> None:
    """
    Disconnect items requiring it. This dependency should be used at the end of the application lifespan.

    This methode should be called as a dependency as test may need to run additional steps
    """
    disconnect_redis_client(state["redis_client"])
    await state["engine"].dispose()

    bayplan_error_logger.info("Application state disconnected successfully.")


def get_app_state(request: Request) -> RuntimeLifespanState:
    """
    Get the application state from the request. The state is injected by our middleware.
    """
    # `request.state` may be a TypedDict or a starlette State object
    # depending if it is accessed in an endpoint or the lifespan

    if isinstance(request.state, dict):
        return cast("RuntimeLifespanState", request.state)
    if isinstance(request.state, starlette.datastructures.State):
        return cast("RuntimeLifespanState", request.state.__dict__["_state"])
    raise InvalidAppStateTypeError


AppState = Annotated[RuntimeLifespanState, Depends(get_app_state)]


async def get_request_id(state: AppState) -> str:
    """
    The request identifier is a unique UUID which is used to associate logs saved during the same request
    """

    return state["request_id"]


@lru_cache
def get_settings() -> Settings:
    """
    Return a settings object, based on `config.yaml` and `.env`
    """
    # `lru_cache()` decorator is here to prevent the class to be instantiated multiple times.
    # See https://fastapi.tiangolo.com/advanced/settings/#lru_cache-technical-details
    return construct_prod_settings()


async def get_db(state: AppState) -> AsyncGenerator[AsyncSession, None]:
    """
    Return a database session that will be automatically committed and closed after usage.

    If an HTTPException is raised during the request, we consider that the error was expected and managed by the endpoint. We commit the session.
    If an other exception is raised, we rollback the session.

    Cruds and endpoints should never call `db.commit()` or `db.rollback()` directly.
    Scheduling operations which must be committed before a bay is released commit through `bay_transaction`.
    """
    async with state["SessionLocal"]() as db:
        try:
            yield db
        except HTTPException:
            await db.commit()
            raise
        except Exception:
            await db.rollback()
            raise
        else:
            await db.commit()
        finally:
            await db.close()


def get_redis_client(state: AppState) -> redis.Redis | None:
    """
    Dependency that returns the redis client

    If the redis client is not available, it will return None.
    """
    return state["redis_client"]


def get_clock(state: AppState) -> Clock:
    """
    Dependency that returns the clock used to compare records to the current instant
    """
    return state["clock"]


def get_bay_lock_manager(state: AppState) -> BayLockManager:
    return state["bay_lock_manager"]


def get_notification_manager(state: AppState) -> NotificationManager:
    """
    Dependency that returns the notification manager.
    This dependency provide a low level tool allowing to use notification manager internal methods.

    If you want to send a notification, prefer `get_notification_tool` dependency.
    """
    return state["notification_manager"]


def get_notification_tool(
    background_tasks: BackgroundTasks,
    notification_manager: NotificationManager = Depends(get_notification_manager),
) -> NotificationTool:
    """
    Dependency that returns a notification tool, allowing to send scheduling events as background tasks.
    """

    return NotificationTool(
        background_tasks=background_tasks,
        notification_manager=notification_manager,
    )


def get_token_data(
    settings: Settings = Depends(get_settings),
    credentials: HTTPAuthorizationCredentials | None = Depends(security.bearer_scheme),
    request_id: str = Depends(get_request_id),
) -> schemas_auth.TokenData:
    """
    Dependency that returns the token payload data
    """
    if credentials is None:
        bayplan_access_logger.info(
            f"Get_token_data: Missing actor token ({request_id})",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_utils.get_token_data(
        settings=settings,
        token=credentials.credentials,
        request_id=request_id,
    )


def get_actor(
    token_data: schemas_auth.TokenData = Depends(get_token_data),
) -> schemas_auth.Actor:
    """
    A dependency that will:
        * check if the request header contains a valid actor token
        * return the `Actor` described by the token

    Authorization decisions depend on the resource and are taken by the scheduling operations.
    """
    return auth_utils.get_actor_from_token_data(token_data)
