import logging

import jwt
from fastapi import HTTPException, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError

from app.core.auth import schemas_auth
from app.core.utils import security
from app.core.utils.config import Settings

bayplan_access_logger = logging.getLogger("bayplan.access")


def get_token_data(
    settings: Settings,
    token: str,
    request_id: str,
) -> schemas_auth.TokenData:
    """
    Decode and verify an actor token, then return its payload
    """
    try:
        payload = jwt.decode(
            token,
            settings.ACCESS_TOKEN_SECRET_KEY,
            algorithms=[security.jwt_algorithm],
        )
        token_data = schemas_auth.TokenData(**payload)
        bayplan_access_logger.info(
            f"Get_token_data: Decoded a token for user {token_data.sub} of company {token_data.company_id} ({request_id})",
        )
    except ExpiredSignatureError:
        bayplan_access_logger.warning(
            f"Get_token_data: Token has expired ({request_id})",
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token has expired",
        ) from None
    except (InvalidTokenError, ValidationError):
        bayplan_access_logger.warning(
            f"Get_token_data: Failed to decode a token ({request_id})",
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        ) from None

    return token_data


def get_actor_from_token_data(token_data: schemas_auth.TokenData) -> schemas_auth.Actor:
    return schemas_auth.Actor(
        user_id=token_data.sub,
        company_id=token_data.company_id,
        role=token_data.role,
    )
