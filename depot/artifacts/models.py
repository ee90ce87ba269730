from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Artifact(_CamelModel):
    """Catalog record for one published package."""

    id: str
    title: str
    description: Optional[str] = None
    package_name: str
    version: Optional[str] = None
    version_code: Optional[int] = None
    blob_key: str
    blob_url: str
    icon_key: Optional[str] = None
    icon_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class PublishRequest(_CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    package_name: Optional[str] = None
    version: Optional[str] = None
    version_code: Optional[int] = None


class ArtifactPatch(_CamelModel):
    """Partial update; only fields explicitly set are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    package_name: Optional[str] = None
    version: Optional[str] = None
    version_code: Optional[int] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


@dataclass
class BlobUpload:
    filename: str
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


class DeleteResponse(_CamelModel):
    id: str
    deleted: bool = True
