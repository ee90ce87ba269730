"""Runtime configuration helpers for the depot service."""
from __future__ import annotations

import os
from typing import Dict, Optional


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = _get_env(name)
        if value:
            return value
    return None


def _int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


# --- Blob store ---

def get_blob_backend() -> str:
    return (_get_env("BLOB_BACKEND") or "memory").lower()


def get_blob_bucket() -> Optional[str]:
    return _first_env("BLOB_BUCKET", "R2_BUCKET")


def get_blob_endpoint() -> Optional[str]:
    return _first_env("BLOB_ENDPOINT", "R2_ENDPOINT")


def get_blob_access_key() -> Optional[str]:
    return _first_env("BLOB_ACCESS_KEY", "R2_ACCESS_KEY")


def get_blob_secret_key() -> Optional[str]:
    return _first_env("BLOB_SECRET_KEY", "R2_SECRET_KEY")


def get_blob_region() -> str:
    # R2 ignores regions but boto3 requires one.
    return _get_env("BLOB_REGION") or "auto"


def get_public_url_base() -> str:
    base = _first_env("PUBLIC_URL_BASE", "R2_PUBLIC_URL")
    if not base:
        if get_blob_backend() == "memory":
            return "http://localhost/blobs"
        raise RuntimeError("PUBLIC_URL_BASE (or R2_PUBLIC_URL) is required")
    return base.rstrip("/")


# --- Catalog ---

def get_catalog_backend() -> str:
    return (_get_env("CATALOG_BACKEND") or "memory").lower()


def get_catalog_collection() -> str:
    return _get_env("CATALOG_COLLECTION") or "artifacts"


def get_credentials_collection() -> str:
    return _get_env("CREDENTIALS_COLLECTION") or "admins"


def get_firestore_project() -> Optional[str]:
    return _first_env("GCP_PROJECT_ID", "GCP_PROJECT")


def get_catalog_delete_attempts() -> int:
    return max(1, _int_env("CATALOG_DELETE_ATTEMPTS", 3))


# --- Auth ---

def get_auth_mode() -> str:
    mode = (_get_env("AUTH_MODE") or "jwt").lower()
    if mode not in {"jwt", "static"}:
        raise RuntimeError(f"AUTH_MODE must be 'jwt' or 'static'. Got: '{mode}'")
    return mode


def get_jwt_signing_secret() -> str:
    secret = _get_env("AUTH_JWT_SIGNING")
    if not secret:
        raise RuntimeError("AUTH_JWT_SIGNING is required for token auth")
    return secret


def get_token_ttl_seconds() -> int:
    return _int_env("AUTH_TOKEN_TTL_SECONDS", 3600)


def get_static_api_token() -> str:
    token = _get_env("API_AUTH_TOKEN")
    if not token:
        raise RuntimeError("API_AUTH_TOKEN is required when AUTH_MODE=static")
    return token


def config_snapshot() -> Dict[str, object]:
    """Non-secret view of the active configuration, for startup logging."""
    return {
        "blob_backend": get_blob_backend(),
        "blob_bucket": get_blob_bucket(),
        "blob_endpoint": get_blob_endpoint(),
        "catalog_backend": get_catalog_backend(),
        "catalog_collection": get_catalog_collection(),
        "firestore_project": get_firestore_project(),
        "auth_mode": (_get_env("AUTH_MODE") or "jwt").lower(),
        "token_ttl_seconds": get_token_ttl_seconds(),
    }
