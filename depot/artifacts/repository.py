"""Artifact catalog backends (in-memory, Firestore)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from depot.artifacts.models import Artifact
from depot.common.errors import CatalogFault
from depot.config import runtime_config

try:  # pragma: no cover
    from google.cloud import firestore  # type: ignore
except Exception:  # pragma: no cover
    firestore = None

logger = logging.getLogger(__name__)


class ArtifactCatalog(Protocol):
    """Structured store for artifact metadata.

    ``get``/``update`` return None and ``delete`` returns False when the id is
    unknown. Backend failures raise ``CatalogFault`` and are never retried here.
    """

    def create(self, fields: Dict[str, Any]) -> Artifact: ...
    def get(self, artifact_id: str) -> Optional[Artifact]: ...
    def list(self, package_name: Optional[str] = None) -> List[Artifact]: ...
    def update(self, artifact_id: str, patch: Dict[str, Any]) -> Optional[Artifact]: ...
    def delete(self, artifact_id: str) -> bool: ...


class InMemoryArtifactCatalog:
    """In-memory implementation for dev/tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Artifact] = {}
        self._seq: Dict[str, int] = {}
        self._issued: set[str] = set()
        self._counter = 0

    def _new_id(self) -> str:
        while True:
            candidate = uuid4().hex
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate

    def create(self, fields: Dict[str, Any]) -> Artifact:
        artifact = Artifact(**{**fields, "id": self._new_id()})
        self._counter += 1
        self._items[artifact.id] = artifact
        self._seq[artifact.id] = self._counter
        return artifact.model_copy(deep=True)

    def get(self, artifact_id: str) -> Optional[Artifact]:
        artifact = self._items.get(artifact_id)
        return artifact.model_copy(deep=True) if artifact else None

    def list(self, package_name: Optional[str] = None) -> List[Artifact]:
        items = [a for a in self._items.values() if package_name is None or a.package_name == package_name]
        items.sort(key=lambda a: (a.created_at, self._seq[a.id]), reverse=True)
        return [a.model_copy(deep=True) for a in items]

    def update(self, artifact_id: str, patch: Dict[str, Any]) -> Optional[Artifact]:
        current = self._items.get(artifact_id)
        if not current:
            return None
        patch = {k: v for k, v in patch.items() if k not in {"id", "created_at"}}
        merged = Artifact(**{**current.model_dump(), **patch})
        self._items[artifact_id] = merged
        return merged.model_copy(deep=True)

    def delete(self, artifact_id: str) -> bool:
        self._seq.pop(artifact_id, None)
        return self._items.pop(artifact_id, None) is not None


class FirestoreArtifactCatalog:
    """Firestore implementation; one document per artifact."""

    def __init__(self, client: Optional[object] = None, collection: Optional[str] = None) -> None:
        if client is None:
            if firestore is None:
                raise RuntimeError("google-cloud-firestore is required for the Firestore catalog")
            project = runtime_config.get_firestore_project()
            if not project:
                raise RuntimeError("GCP project is required for the Firestore catalog")
            client = firestore.Client(project=project)  # type: ignore[union-attr]
        self._client = client
        self._collection = collection or runtime_config.get_catalog_collection()

    def _col(self):
        return self._client.collection(self._collection)

    def create(self, fields: Dict[str, Any]) -> Artifact:
        try:
            ref = self._col().document()
            artifact = Artifact(**{**fields, "id": ref.id})
            ref.set(artifact.model_dump())
        except Exception as exc:
            logger.error("Firestore create failed: %s", exc)
            raise CatalogFault("create", exc) from exc
        return artifact

    def get(self, artifact_id: str) -> Optional[Artifact]:
        try:
            snap = self._col().document(artifact_id).get()
        except Exception as exc:
            logger.error("Firestore get failed for %s: %s", artifact_id, exc)
            raise CatalogFault("get", exc, artifact_id) from exc
        if snap and snap.exists:
            return Artifact(**snap.to_dict())
        return None

    def list(self, package_name: Optional[str] = None) -> List[Artifact]:
        descending = firestore.Query.DESCENDING if firestore is not None else "DESCENDING"
        try:
            query = self._col()
            if package_name is not None:
                query = query.where("package_name", "==", package_name)
            query = query.order_by("created_at", direction=descending)
            return [Artifact(**doc.to_dict()) for doc in query.stream()]
        except Exception as exc:
            logger.error("Firestore list failed: %s", exc)
            raise CatalogFault("list", exc) from exc

    def update(self, artifact_id: str, patch: Dict[str, Any]) -> Optional[Artifact]:
        patch = {k: v for k, v in patch.items() if k not in {"id", "created_at"}}
        try:
            ref = self._col().document(artifact_id)
            snap = ref.get()
            if not snap.exists:
                return None
            if patch:
                ref.update(patch)
            current = snap.to_dict()
        except Exception as exc:
            logger.error("Firestore update failed for %s: %s", artifact_id, exc)
            raise CatalogFault("update", exc, artifact_id) from exc
        return Artifact(**{**current, **patch})

    def delete(self, artifact_id: str) -> bool:
        try:
            ref = self._col().document(artifact_id)
            if not ref.get().exists:
                return False
            ref.delete()
        except Exception as exc:
            logger.error("Firestore delete failed for %s: %s", artifact_id, exc)
            raise CatalogFault("delete", exc, artifact_id) from exc
        return True


def default_catalog() -> ArtifactCatalog:
    backend = runtime_config.get_catalog_backend()
    if backend == "firestore":
        try:
            return FirestoreArtifactCatalog()
        except Exception as e:
            raise RuntimeError(f"Failed to initialize FirestoreArtifactCatalog: {e}")
    if backend == "memory":
        return InMemoryArtifactCatalog()
    raise RuntimeError(f"CATALOG_BACKEND must be 'firestore' or 'memory'. Got: '{backend}'")
