"""Password hashing helpers (pbkdf2_hmac).

Hashes are stored as ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>`` so the
iteration count can be raised without invalidating existing records.
"""
from __future__ import annotations

import hashlib
import secrets
from typing import Optional

SCHEME = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 100_000


def _derive(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations).hex()


def hash_password(password: str, salt: Optional[str] = None, iterations: int = DEFAULT_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    return f"{SCHEME}${iterations}${salt}${_derive(password, salt, iterations)}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt, digest = encoded.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != SCHEME:
        return False
    return secrets.compare_digest(_derive(password, salt, rounds), digest)
