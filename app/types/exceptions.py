import uuid
from typing import Any

from fastapi import HTTPException


class ContentHTTPException(HTTPException):
    """
    A custom HTTPException allowing to return custom content.

    Instead of returning `{detail: <content>}`, this exception can return a json serialized `<content>`.

    You need to define a custom exception handler to use it:
    ```python
    @app.exception_handler(ContentHTTPException)
    async def content_exception_handler(
        request: Request,
        exc: ContentHTTPException,
    ):
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.content),
            headers=exc.headers,
        )
    ```
    """

    def __init__(
        self,
        status_code: int,
        content: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=content, headers=headers)
        self.content = content


class SchedulingPersistenceError(Exception):
    """
    The database failed during a scheduling operation. The operation was rolled back,
    but the caller can not know if a concurrent operation succeeded and should query the state again before retrying.
    """

    def __init__(self, message: str = "The scheduling operation could not be persisted"):
        super().__init__(message)


class BayLockTimeoutError(SchedulingPersistenceError):
    def __init__(self, bay_id: uuid.UUID, timeout: float):
        super().__init__(
            f"Could not acquire the lock of bay {bay_id} within {timeout} seconds",
        )


class InvalidAppStateTypeError(Exception):
    def __init__(self):
        super().__init__("The application state should be a dict or a starlette State")


class MissingTZInfoInDatetimeError(TypeError):
    def __init__(self):
        super().__init__("tzinfo info is required for datetime objects")


class DotenvMissingVariableError(Exception):
    def __init__(self, variable_name: str):
        super().__init__(f"{variable_name} should be configured in the dotenv")


class DotenvInvalidVariableError(Exception):
    pass
