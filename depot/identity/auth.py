"""Auth gate: login, token verification and the FastAPI dependency."""
from __future__ import annotations

import hmac
import logging
from typing import Optional, Tuple

from fastapi import Header

from depot.common.errors import Unauthenticated, Unauthorized
from depot.config import runtime_config
from depot.identity.jwt_service import JwtService, default_jwt_service
from depot.identity.models import AdminIdentity
from depot.identity.passwords import verify_password
from depot.identity.state import credential_repo

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "invalid credentials"


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthenticated("missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("missing bearer token")
    return token


class StaticTokenVerifier:
    """Single shared secret, compared in constant time."""

    def __init__(self, secret: Optional[str] = None) -> None:
        self._secret = secret

    def verify(self, token: str) -> AdminIdentity:
        expected = (self._secret or runtime_config.get_static_api_token()).encode("utf-8")
        if not hmac.compare_digest(expected, token.encode("utf-8")):
            raise Unauthenticated("invalid token")
        return AdminIdentity(admin_id="static", login="static", provider="static")


def verify(token: str, jwt_service: Optional[JwtService] = None) -> AdminIdentity:
    if runtime_config.get_auth_mode() == "static":
        return StaticTokenVerifier().verify(token)
    identity = (jwt_service or default_jwt_service()).decode_token(token)
    if credential_repo.get(identity.admin_id) is None:
        raise Unauthorized("admin account no longer exists")
    return identity


def login(login_name: str, password: str, jwt_service: Optional[JwtService] = None) -> Tuple[str, int]:
    """Check the admin's password and issue a signed token (token, expires_at)."""
    if runtime_config.get_auth_mode() != "jwt":
        raise Unauthenticated("login is disabled when AUTH_MODE=static")
    credential = credential_repo.get_by_login(login_name)
    if not credential or not verify_password(password, credential.password_hash):
        logger.warning("failed login for %s", login_name)
        raise Unauthenticated(INVALID_CREDENTIALS)
    return (jwt_service or default_jwt_service()).issue_for_admin(credential)


def get_admin_identity(authorization: Optional[str] = Header(default=None)) -> AdminIdentity:
    return verify(bearer_token(authorization))
