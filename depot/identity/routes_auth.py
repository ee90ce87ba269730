from __future__ import annotations

from fastapi import APIRouter, Depends

from depot.identity import auth
from depot.identity.auth_schemas import AuthTokenResponse, IdentityResponse, LoginRequest
from depot.identity.models import AdminIdentity

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthTokenResponse)
def login(payload: LoginRequest):
    token, expires_at = auth.login(payload.login, payload.password)
    return AuthTokenResponse(access_token=token, expires_at=expires_at)


@router.get("/me", response_model=IdentityResponse)
def me(identity: AdminIdentity = Depends(auth.get_admin_identity)):
    return IdentityResponse(
        admin_id=identity.admin_id,
        login=identity.login,
        provider=identity.provider,
        expires_at=identity.claims.get("exp"),
    )
