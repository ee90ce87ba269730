"""Shared credential repository singleton for routes/services."""
from __future__ import annotations

from depot.config import runtime_config
from depot.identity.repository import (
    CredentialRepository,
    FirestoreCredentialRepository,
    InMemoryCredentialRepository,
)


def _default_repo() -> CredentialRepository:
    backend = runtime_config.get_catalog_backend()
    if backend == "firestore":
        try:
            return FirestoreCredentialRepository()
        except Exception as e:
            raise RuntimeError(f"Failed to initialize FirestoreCredentialRepository: {e}")
    if backend == "memory":
        return InMemoryCredentialRepository()
    raise RuntimeError(f"CATALOG_BACKEND must be 'firestore' or 'memory'. Got: '{backend}'")


class LazyCredentialRepo:
    def __init__(self):
        self._impl = None

    @property
    def _repo(self) -> CredentialRepository:
        if self._impl is None:
            self._impl = _default_repo()
        return self._impl

    def __getattr__(self, name):
        return getattr(self._repo, name)


credential_repo: CredentialRepository = LazyCredentialRepo()  # type: ignore


def set_credential_repo(repo: CredentialRepository) -> None:
    # Swap the proxy's target so modules that already imported credential_repo see it.
    credential_repo._impl = repo  # type: ignore[attr-defined]
