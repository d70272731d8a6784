from datetime import timedelta

import jwt
import pytest
from fastapi import HTTPException

from app.core.auth.types_auth import CompanyRole
from app.core.utils import security
from app.utils.auth import auth_utils
from tests.commons import create_actor_token, settings


def test_decode_actor_token():
    token = create_actor_token(
        "user-1",
        "company-1",
        CompanyRole.company_super_admin,
    )
    token_data = auth_utils.get_token_data(
        settings=settings,
        token=token,
        request_id="request_id",
    )
    actor = auth_utils.get_actor_from_token_data(token_data)
    assert actor.user_id == "user-1"
    assert actor.company_id == "company-1"
    assert actor.is_company_super_admin
    assert actor.belongs_to("company-1")
    assert not actor.belongs_to("company-2")


def test_expired_actor_token():
    token = create_actor_token(
        "user-1",
        "company-1",
        expires_delta=timedelta(seconds=-10),
    )
    with pytest.raises(HTTPException) as error:
        auth_utils.get_token_data(settings=settings, token=token, request_id="request_id")
    assert error.value.status_code == 403
    assert error.value.detail == "Token has expired"


def test_actor_token_signed_with_another_secret():
    token = jwt.encode(
        {"sub": "user-1", "company_id": "company-1", "role": "company_admin"},
        "another-secret-which-is-long-enough-for-hs256",
        algorithm=security.jwt_algorithm,
    )
    with pytest.raises(HTTPException) as error:
        auth_utils.get_token_data(settings=settings, token=token, request_id="request_id")
    assert error.value.status_code == 403


def test_actor_token_with_an_unknown_role():
    token = jwt.encode(
        {"sub": "user-1", "company_id": "company-1", "role": "mechanic"},
        settings.ACCESS_TOKEN_SECRET_KEY,
        algorithm=security.jwt_algorithm,
    )
    with pytest.raises(HTTPException) as error:
        auth_utils.get_token_data(settings=settings, token=token, request_id="request_id")
    assert error.value.status_code == 403
