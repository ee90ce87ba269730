"""One-shot creation of the administrator credential."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from depot.identity.models import AdminCredential
from depot.identity.passwords import hash_password
from depot.identity.repository import CredentialRepository
from depot.identity.state import credential_repo

logger = logging.getLogger(__name__)


def ensure_admin(
    login: str,
    password: str,
    repo: Optional[CredentialRepository] = None,
) -> Tuple[AdminCredential, bool]:
    """Create the admin unless the login already exists; returns (credential, created)."""
    if not login or not password:
        raise ValueError("login and password are required")
    target = repo or credential_repo
    existing = target.get_by_login(login)
    if existing:
        logger.info("admin %s already exists", login)
        return existing, False
    credential = target.create(AdminCredential(login=login, password_hash=hash_password(password)))
    logger.info("admin %s created", login)
    return credential, True
