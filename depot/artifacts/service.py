"""Publish / replace / remove lifecycle over the blob store and the catalog.

The catalog record is the only signal that an artifact exists, so every
operation orders its writes such that a partial failure can leave an
orphaned blob (invisible, wasted space) but never a record pointing at a
missing blob:

* publish uploads blobs before creating the record;
* replace uploads new blobs, commits the record, then deletes the old blobs;
* remove deletes blobs and then the record. A failure of that final delete
  is the one window where a dangling reference is possible; it is retried
  ``catalog_delete_attempts`` times.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from depot.artifacts.events import ArtifactEvent, EventSink, get_event_sink
from depot.artifacts.models import (
    DEFAULT_CONTENT_TYPE,
    Artifact,
    ArtifactPatch,
    BlobUpload,
    PublishRequest,
)
from depot.artifacts.repository import ArtifactCatalog, default_catalog
from depot.common.errors import ArtifactNotFound, CatalogFault, StorageFault, ValidationError
from depot.config import runtime_config
from depot.storage.blob_store import BlobStore, default_blob_store, public_url
from depot.storage.keys import APK_NAMESPACE, ICON_NAMESPACE, KeyGenerator

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class ArtifactService:
    def __init__(
        self,
        catalog: Optional[ArtifactCatalog] = None,
        blobs: Optional[BlobStore] = None,
        keys: Optional[KeyGenerator] = None,
        public_base: Optional[str] = None,
        event_sink: Optional[EventSink] = None,
        catalog_delete_attempts: Optional[int] = None,
    ) -> None:
        self.catalog = catalog or default_catalog()
        self.blobs = blobs or default_blob_store()
        self.keys = keys or KeyGenerator()
        self.public_base = (public_base or runtime_config.get_public_url_base()).rstrip("/")
        self._event_sink = event_sink
        attempts = catalog_delete_attempts or runtime_config.get_catalog_delete_attempts()
        self.catalog_delete_attempts = max(1, attempts)

    # --- Reads ---
    def list_artifacts(self, package_name: Optional[str] = None) -> List[Artifact]:
        return self._catalog_call("list", None, self.catalog.list, package_name)

    def get_artifact(self, artifact_id: str) -> Artifact:
        artifact = self._catalog_call("get", artifact_id, self.catalog.get, artifact_id)
        if not artifact:
            raise ArtifactNotFound(artifact_id)
        return artifact

    # --- Publish ---
    def publish(
        self,
        request: PublishRequest,
        blob: Optional[BlobUpload],
        icon: Optional[BlobUpload] = None,
    ) -> Artifact:
        apk = self._validate_publish(request, blob)

        blob_key = self._put(APK_NAMESPACE, apk)
        self._emit("publish", "blob_stored", keys=[blob_key])

        icon_key: Optional[str] = None
        icon = self._usable_icon("publish", None, icon)
        if icon is not None:
            try:
                icon_key = self._put(ICON_NAMESPACE, icon)
                self._emit("publish", "icon_stored", keys=[icon_key])
            except StorageFault as exc:
                self._emit("publish", "icon_upload_failed", keys=[exc.key], error=str(exc))

        fields: Dict[str, Any] = {
            "title": request.title.strip() if not _blank(request.title) else apk.filename,
            "description": request.description,
            "package_name": request.package_name.strip(),
            "version": request.version,
            "version_code": request.version_code,
            "blob_key": blob_key,
            "blob_url": self.url_for(blob_key),
            "icon_key": icon_key,
            "icon_url": self.url_for(icon_key) if icon_key else None,
        }
        now = _now()
        fields["created_at"] = now
        fields["updated_at"] = now

        written = [k for k in (blob_key, icon_key) if k]
        try:
            artifact = self._catalog_call("create", None, self.catalog.create, fields)
        except CatalogFault as exc:
            self._emit("publish", "orphaned_objects", keys=written, error=str(exc))
            raise
        self._emit("publish", "published", artifact.id, keys=written)
        return artifact

    # --- Replace ---
    def replace(
        self,
        artifact_id: str,
        patch: Optional[ArtifactPatch] = None,
        blob: Optional[BlobUpload] = None,
        icon: Optional[BlobUpload] = None,
    ) -> Artifact:
        changes = patch.changes() if patch else {}
        self._validate_patch(changes, blob)
        current = self.get_artifact(artifact_id)

        updates: Dict[str, Any] = dict(changes)
        if "title" in updates:
            updates["title"] = updates["title"].strip()
        if "package_name" in updates:
            updates["package_name"] = updates["package_name"].strip()
        uploaded: List[str] = []
        superseded: List[str] = []

        if blob is not None:
            new_key = self._put(APK_NAMESPACE, blob)
            uploaded.append(new_key)
            updates["blob_key"] = new_key
            updates["blob_url"] = self.url_for(new_key)
            superseded.append(current.blob_key)
            self._emit("replace", "blob_stored", artifact_id, keys=[new_key])

        icon = self._usable_icon("replace", artifact_id, icon)
        if icon is not None:
            try:
                new_icon_key = self._put(ICON_NAMESPACE, icon)
            except StorageFault as exc:
                self._emit("replace", "icon_upload_failed", artifact_id, keys=[exc.key], error=str(exc))
            else:
                uploaded.append(new_icon_key)
                updates["icon_key"] = new_icon_key
                updates["icon_url"] = self.url_for(new_icon_key)
                if current.icon_key:
                    superseded.append(current.icon_key)
                self._emit("replace", "icon_stored", artifact_id, keys=[new_icon_key])

        updates["updated_at"] = _now()
        try:
            updated = self._catalog_call("update", artifact_id, self.catalog.update, artifact_id, updates)
        except CatalogFault as exc:
            self._emit("replace", "orphaned_objects", artifact_id, keys=uploaded, error=str(exc))
            raise
        if updated is None:
            # Removed between fetch and update.
            self._emit("replace", "orphaned_objects", artifact_id, keys=uploaded, error="record vanished")
            raise ArtifactNotFound(artifact_id)

        live = {updated.blob_key, updated.icon_key}
        for key in superseded:
            if key in live:
                continue
            self._delete_tolerated("replace", artifact_id, key, "stale_object_delete_failed")
        self._emit("replace", "replaced", artifact_id, keys=uploaded)
        return updated

    # --- Remove ---
    def remove(self, artifact_id: str) -> Artifact:
        current = self.get_artifact(artifact_id)

        for key in (current.blob_key, current.icon_key):
            if key:
                self._delete_tolerated("remove", artifact_id, key, "blob_delete_failed")

        keys = [k for k in (current.blob_key, current.icon_key) if k]
        attempt = 1
        while True:
            try:
                existed = self._catalog_call("delete", artifact_id, self.catalog.delete, artifact_id)
                break
            except CatalogFault as exc:
                if attempt >= self.catalog_delete_attempts:
                    self._emit("remove", "dangling_reference", artifact_id, keys=keys, error=str(exc))
                    raise
                self._emit(
                    "remove",
                    "catalog_delete_retry",
                    artifact_id,
                    error=str(exc),
                    details={"attempt": attempt},
                )
                attempt += 1

        if not existed:
            self._emit("remove", "already_removed", artifact_id)
        self._emit("remove", "removed", artifact_id, keys=keys)
        return current

    # --- Helpers ---
    def url_for(self, key: str) -> str:
        return public_url(self.public_base, key)

    def _validate_publish(self, request: PublishRequest, blob: Optional[BlobUpload]) -> BlobUpload:
        if blob is None or not blob.content:
            raise ValidationError("apk file is required", {"field": "apk"})
        if _blank(request.package_name):
            raise ValidationError("packageName is required", {"field": "packageName"})
        if _blank(request.description):
            raise ValidationError("description is required", {"field": "description"})
        if request.version_code is not None and request.version_code < 0:
            raise ValidationError("versionCode must be non-negative", {"field": "versionCode"})
        return blob

    def _usable_icon(self, action: str, artifact_id: Optional[str], icon: Optional[BlobUpload]) -> Optional[BlobUpload]:
        if icon is None:
            return None
        if not icon.content:
            self._emit(action, "icon_skipped", artifact_id, details={"filename": icon.filename, "reason": "empty"})
            return None
        return icon

    def _validate_patch(self, changes: Dict[str, Any], blob: Optional[BlobUpload]) -> None:
        if blob is not None and not blob.content:
            raise ValidationError("apk file is empty", {"field": "apk"})
        for field_name, alias in (("title", "title"), ("package_name", "packageName"), ("description", "description")):
            if field_name in changes and _blank(changes[field_name]):
                raise ValidationError(f"{alias} cannot be empty", {"field": alias})
        code = changes.get("version_code")
        if code is not None and code < 0:
            raise ValidationError("versionCode must be non-negative", {"field": "versionCode"})

    def _put(self, namespace: str, upload: BlobUpload) -> str:
        key = self.keys.generate(namespace, upload.filename)
        try:
            self.blobs.put(key, upload.content, upload.content_type or DEFAULT_CONTENT_TYPE)
        except StorageFault:
            raise
        except Exception as exc:
            raise StorageFault("put", key, exc) from exc
        return key

    def _delete_tolerated(self, action: str, artifact_id: str, key: str, failure_step: str) -> bool:
        try:
            self.blobs.delete(key)
        except Exception as exc:
            self._emit(action, failure_step, artifact_id, keys=[key], error=str(exc))
            return False
        self._emit(action, "blob_deleted", artifact_id, keys=[key])
        return True

    def _catalog_call(self, operation: str, artifact_id: Optional[str], fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except CatalogFault:
            raise
        except Exception as exc:
            raise CatalogFault(operation, exc, artifact_id) from exc

    def _emit(
        self,
        action: str,
        step: str,
        artifact_id: Optional[str] = None,
        keys: Optional[List[str]] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        event = ArtifactEvent(
            action=action,
            step=step,
            artifact_id=artifact_id,
            keys=list(keys or []),
            error=error,
            details=details or {},
        )
        sink = self._event_sink or get_event_sink()
        try:
            sink(event)
        except Exception as exc:
            logger.warning("artifact event sink failed for %s.%s: %s", action, step, exc)


_default_service: Optional[ArtifactService] = None


def get_artifact_service() -> ArtifactService:
    global _default_service
    if _default_service is None:
        _default_service = ArtifactService()
    return _default_service


def set_artifact_service(service: ArtifactService) -> None:
    global _default_service
    _default_service = service
