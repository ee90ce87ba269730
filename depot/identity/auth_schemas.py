from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    login: str
    password: str


class AuthTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: int


class IdentityResponse(BaseModel):
    admin_id: str
    login: str
    provider: str
    expires_at: Optional[int] = None
