"""Error taxonomy shared by the depot services.

Every failure a caller can observe is one of these kinds, each with a stable
machine-readable code and HTTP status used by the error envelope.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class DepotError(RuntimeError):
    code = "depot.error"
    http_status = 500
    resource_kind: Optional[str] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}


class ValidationError(DepotError):
    code = "validation.error"
    http_status = 400


class Unauthenticated(DepotError):
    code = "auth.unauthenticated"
    http_status = 401
    resource_kind = "auth"


class Unauthorized(DepotError):
    code = "auth.unauthorized"
    http_status = 403
    resource_kind = "auth"


class ArtifactNotFound(DepotError):
    code = "artifact.not_found"
    http_status = 404
    resource_kind = "artifact"

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"artifact {artifact_id} not found", {"id": artifact_id})
        self.artifact_id = artifact_id


class StorageFault(DepotError):
    """Blob backend failure; carries the key and the operation that failed."""

    code = "storage.fault"
    http_status = 502
    resource_kind = "blob"

    def __init__(self, operation: str, key: str, cause: Optional[BaseException] = None) -> None:
        reason = f": {cause}" if cause else ""
        super().__init__(f"blob {operation} failed for {key}{reason}", {"operation": operation, "key": key})
        self.operation = operation
        self.key = key


class CatalogFault(DepotError):
    code = "catalog.fault"
    http_status = 503
    resource_kind = "artifact"

    def __init__(self, operation: str, cause: Optional[BaseException] = None, artifact_id: Optional[str] = None) -> None:
        reason = f": {cause}" if cause else ""
        details: Dict[str, Any] = {"operation": operation}
        if artifact_id:
            details["id"] = artifact_id
        super().__init__(f"catalog {operation} failed{reason}", details)
        self.operation = operation
        self.artifact_id = artifact_id
