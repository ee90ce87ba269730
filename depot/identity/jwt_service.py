"""Minimal HS256 JWT issue/verify for admin sessions."""
from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Any, Callable, Dict, Optional, Tuple

from depot.common.errors import Unauthenticated
from depot.config import runtime_config
from depot.identity.models import AdminCredential, AdminIdentity


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


class JwtService:
    def __init__(
        self,
        secret: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._secret = secret
        self._ttl = ttl_seconds
        self._clock = clock or time.time

    def _get_secret(self) -> bytes:
        return (self._secret or runtime_config.get_jwt_signing_secret()).encode("utf-8")

    @property
    def ttl_seconds(self) -> int:
        return self._ttl if self._ttl is not None else runtime_config.get_token_ttl_seconds()

    def _sign(self, signing_input: str) -> bytes:
        return hmac.new(self._get_secret(), signing_input.encode("utf-8"), sha256).digest()

    def issue_token(self, claims: Dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        signing_input = ".".join(
            [
                _b64url(json.dumps(header, separators=(",", ":"), sort_keys=True).encode()),
                _b64url(json.dumps(claims, separators=(",", ":"), sort_keys=True).encode()),
            ]
        )
        return signing_input + "." + _b64url(self._sign(signing_input))

    def issue_for_admin(self, credential: AdminCredential) -> Tuple[str, int]:
        """Return a token for the admin and its expiry (epoch seconds)."""
        issued_at = int(self._clock())
        expires_at = issued_at + self.ttl_seconds
        token = self.issue_token(
            {"sub": credential.id, "login": credential.login, "iat": issued_at, "exp": expires_at}
        )
        return token, expires_at

    def decode_token(self, token: str) -> AdminIdentity:
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise Unauthenticated("invalid token")
        expected_sig = self._sign(header_b64 + "." + payload_b64)
        try:
            provided_sig = _b64url_decode(sig_b64)
            header = json.loads(_b64url_decode(header_b64))
        except (ValueError, TypeError):
            raise Unauthenticated("invalid token")
        if not hmac.compare_digest(expected_sig, provided_sig):
            raise Unauthenticated("invalid signature")
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            raise Unauthenticated("unsupported token algorithm")
        try:
            payload = json.loads(_b64url_decode(payload_b64))
            subject = payload["sub"]
            expires_at = int(payload["exp"])
        except (ValueError, TypeError, KeyError):
            raise Unauthenticated("invalid token claims")
        if expires_at <= self._clock():
            raise Unauthenticated("token expired")
        return AdminIdentity(admin_id=subject, login=payload.get("login", ""), provider="jwt", claims=payload)


def default_jwt_service() -> JwtService:
    return JwtService()
