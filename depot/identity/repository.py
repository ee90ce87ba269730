"""Repository interfaces for admin credentials."""
from __future__ import annotations

from typing import Dict, Optional, Protocol

from depot.config import runtime_config
from depot.identity.models import AdminCredential


class CredentialRepository(Protocol):
    def create(self, credential: AdminCredential) -> AdminCredential: ...
    def get(self, credential_id: str) -> Optional[AdminCredential]: ...
    def get_by_login(self, login: str) -> Optional[AdminCredential]: ...


class InMemoryCredentialRepository:
    """In-memory implementation for dev/tests."""

    def __init__(self) -> None:
        self._items: Dict[str, AdminCredential] = {}

    def create(self, credential: AdminCredential) -> AdminCredential:
        if self.get_by_login(credential.login):
            raise ValueError(f"login already exists: {credential.login}")
        self._items[credential.id] = credential
        return credential

    def get(self, credential_id: str) -> Optional[AdminCredential]:
        return self._items.get(credential_id)

    def get_by_login(self, login: str) -> Optional[AdminCredential]:
        for cred in self._items.values():
            if cred.login == login:
                return cred
        return None


class FirestoreCredentialRepository:
    """Firestore implementation; documents are keyed by login so it stays unique."""

    def __init__(self, client: Optional[object] = None, collection: Optional[str] = None) -> None:  # pragma: no cover - optional dep
        if client is None:
            try:
                from google.cloud import firestore  # type: ignore
            except Exception as exc:
                raise RuntimeError("google-cloud-firestore not installed") from exc
            project = runtime_config.get_firestore_project()
            if not project:
                raise RuntimeError("GCP project is required for Firestore credential repo")
            client = firestore.Client(project=project)  # type: ignore[arg-type]
        self._client = client
        self._collection = collection or runtime_config.get_credentials_collection()

    def _col(self):
        return self._client.collection(self._collection)

    def create(self, credential: AdminCredential) -> AdminCredential:
        # create() fails if the document already exists.
        self._col().document(credential.login).create(credential.model_dump())
        return credential

    def get(self, credential_id: str) -> Optional[AdminCredential]:
        query = self._col().where("id", "==", credential_id).limit(1)
        for doc in query.stream():
            return AdminCredential(**doc.to_dict())
        return None

    def get_by_login(self, login: str) -> Optional[AdminCredential]:
        snap = self._col().document(login).get()
        if snap and snap.exists:
            return AdminCredential(**snap.to_dict())
        return None
