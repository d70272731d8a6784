from fastapi.security import HTTPBearer

bearer_scheme = HTTPBearer(
    scheme_name="ActorToken",
    description="HS256 JWT issued by the identity service",
    auto_error=False,
)
"""
Actor tokens are issued by the identity service and sent as `Authorization: Bearer <token>`.
The scheme does not raise by itself: a missing token is reported by `get_token_data` with a 401 response.
"""

jwt_algorithm = "HS256"
"""
The algorithme used to sign actor tokens
"""
