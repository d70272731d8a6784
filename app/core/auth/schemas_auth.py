"""Schemas for actor tokens"""

from datetime import datetime

from pydantic import BaseModel

from app.core.auth.types_auth import CompanyRole


class TokenData(BaseModel):
    sub: str  # Subject: the user id
    company_id: str
    role: CompanyRole
    iat: datetime | None = None
    # exp and iat elements are added by the token generation function


class Actor(BaseModel):
    """
    An already authenticated user acting on the API
    """

    user_id: str
    company_id: str
    role: CompanyRole

    @property
    def is_company_super_admin(self) -> bool:
        return self.role == CompanyRole.company_super_admin

    def belongs_to(self, company_id: str) -> bool:
        return self.company_id == company_id
