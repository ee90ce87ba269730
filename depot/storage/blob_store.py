"""Blob store backends (S3-compatible, GCS, in-memory).

All backends share one contract: ``put`` writes an object, ``delete`` removes
one and succeeds when the key is already gone. Any backend failure surfaces as
``StorageFault``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote, unquote

from depot.common.errors import StorageFault
from depot.config import runtime_config

try:  # pragma: no cover
    import boto3  # type: ignore
    from botocore.exceptions import ClientError  # type: ignore
except Exception:  # pragma: no cover
    boto3 = None
    ClientError = None  # type: ignore

try:  # pragma: no cover
    from google.api_core import exceptions as gcp_exceptions  # type: ignore
    from google.cloud import storage  # type: ignore
except Exception:  # pragma: no cover
    storage = None
    gcp_exceptions = None  # type: ignore

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class BlobStore(Protocol):
    def put(self, key: str, content: bytes, content_type: str) -> None: ...
    def delete(self, key: str) -> None: ...


def public_url(base: str, key: str) -> str:
    return f"{base.rstrip('/')}/{quote(key, safe='')}"


def key_from_url(base: str, url: str) -> Optional[str]:
    prefix = base.rstrip("/") + "/"
    if not url.startswith(prefix):
        return None
    return unquote(url[len(prefix):])


class InMemoryBlobStore:
    """Dict-backed store for dev/tests."""

    def __init__(self) -> None:
        self._objects: Dict[str, tuple[bytes, str]] = {}

    def put(self, key: str, content: bytes, content_type: str) -> None:
        self._objects[key] = (bytes(content), content_type)

    def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self._objects

    def get(self, key: str) -> Optional[bytes]:
        item = self._objects.get(key)
        return item[0] if item else None

    def content_type(self, key: str) -> Optional[str]:
        item = self._objects.get(key)
        return item[1] if item else None

    def keys(self) -> List[str]:
        return sorted(self._objects)


class S3BlobStore:
    """S3-compatible object storage (AWS S3, Cloudflare R2, MinIO)."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        client: Any = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
    ) -> None:
        self._bucket = bucket or runtime_config.get_blob_bucket()
        if not self._bucket:
            raise RuntimeError("BLOB_BUCKET (or R2_BUCKET) is required for the S3 blob store")
        self._client = client or self._default_client(endpoint_url, region)

    def _default_client(self, endpoint_url: Optional[str], region: Optional[str]) -> Any:
        if boto3 is None:
            raise RuntimeError("boto3 is required for the S3 blob store")
        return boto3.client(  # type: ignore[union-attr]
            "s3",
            region_name=region or runtime_config.get_blob_region(),
            endpoint_url=endpoint_url or runtime_config.get_blob_endpoint(),
            aws_access_key_id=runtime_config.get_blob_access_key(),
            aws_secret_access_key=runtime_config.get_blob_secret_key(),
        )

    def put(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self._client.put_object(Bucket=self._bucket, Key=key, Body=content, ContentType=content_type)
        except Exception as exc:
            logger.error("S3 put failed for %s: %s", key, exc)
            raise StorageFault("put", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as exc:
            if ClientError is not None and isinstance(exc, ClientError):
                code = str(exc.response.get("Error", {}).get("Code", ""))
                if code in _MISSING_KEY_CODES:
                    return
            logger.error("S3 delete failed for %s: %s", key, exc)
            raise StorageFault("delete", key, exc) from exc


class GcsBlobStore:
    """Google Cloud Storage bucket."""

    def __init__(self, bucket: Optional[str] = None, client: Any = None) -> None:
        self._bucket_name = bucket or runtime_config.get_blob_bucket()
        if not self._bucket_name:
            raise RuntimeError("BLOB_BUCKET is required for the GCS blob store")
        self._client = client or self._default_client()

    def _default_client(self) -> Any:
        if storage is None:
            raise RuntimeError("google-cloud-storage is not installed")
        return storage.Client(project=runtime_config.get_firestore_project())  # type: ignore[arg-type]

    def _blob(self, key: str):
        return self._client.bucket(self._bucket_name).blob(key)

    def put(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self._blob(key).upload_from_string(content, content_type=content_type)
        except Exception as exc:
            logger.error("GCS put failed for %s: %s", key, exc)
            raise StorageFault("put", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self._blob(key).delete()
        except Exception as exc:
            if gcp_exceptions is not None and isinstance(exc, gcp_exceptions.NotFound):
                return
            logger.error("GCS delete failed for %s: %s", key, exc)
            raise StorageFault("delete", key, exc) from exc


def default_blob_store() -> BlobStore:
    backend = runtime_config.get_blob_backend()
    if backend in {"s3", "r2"}:
        return S3BlobStore()
    if backend == "gcs":
        return GcsBlobStore()
    if backend == "memory":
        return InMemoryBlobStore()
    raise RuntimeError(f"BLOB_BACKEND must be one of s3, r2, gcs, memory. Got: '{backend}'")
