from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from depot.artifacts.models import Artifact, ArtifactPatch, BlobUpload, DEFAULT_CONTENT_TYPE, DeleteResponse, PublishRequest
from depot.artifacts.service import get_artifact_service
from depot.identity.auth import get_admin_identity
from depot.identity.models import AdminIdentity

router = APIRouter(prefix="/apks", tags=["artifacts"])


def _to_upload(file: Optional[UploadFile]) -> Optional[BlobUpload]:
    if file is None or not getattr(file, "filename", None):
        return None
    return BlobUpload(
        filename=file.filename,
        content=file.file.read(),
        content_type=file.content_type or DEFAULT_CONTENT_TYPE,
    )


@router.get("", response_model=List[Artifact])
def list_artifacts(package_name: Optional[str] = Query(None, alias="packageName")):
    return get_artifact_service().list_artifacts(package_name=package_name)


@router.get("/{artifact_id}", response_model=Artifact)
def get_artifact(artifact_id: str):
    return get_artifact_service().get_artifact(artifact_id)


@router.post("", response_model=Artifact)
def publish_artifact(
    apk: Optional[UploadFile] = File(None),
    icon: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    package_name: Optional[str] = Form(None, alias="packageName"),
    version: Optional[str] = Form(None),
    version_code: Optional[int] = Form(None, alias="versionCode"),
    identity: AdminIdentity = Depends(get_admin_identity),
):
    """Upload a package (and optional icon) and create its catalog record."""
    request = PublishRequest(
        title=title,
        description=description,
        package_name=package_name,
        version=version,
        version_code=version_code,
    )
    return get_artifact_service().publish(request, _to_upload(apk), _to_upload(icon))


@router.put("/{artifact_id}", response_model=Artifact)
def replace_artifact(
    artifact_id: str,
    apk: Optional[UploadFile] = File(None),
    icon: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    package_name: Optional[str] = Form(None, alias="packageName"),
    version: Optional[str] = Form(None),
    version_code: Optional[int] = Form(None, alias="versionCode"),
    identity: AdminIdentity = Depends(get_admin_identity),
):
    """Patch metadata and optionally rotate the package and/or icon."""
    # Absent form fields mean "leave unchanged".
    supplied = {
        "title": title,
        "description": description,
        "package_name": package_name,
        "version": version,
        "version_code": version_code,
    }
    patch = ArtifactPatch(**{k: v for k, v in supplied.items() if v is not None})
    return get_artifact_service().replace(artifact_id, patch, _to_upload(apk), _to_upload(icon))


@router.delete("/{artifact_id}", response_model=DeleteResponse)
def remove_artifact(artifact_id: str, identity: AdminIdentity = Depends(get_admin_identity)):
    removed = get_artifact_service().remove(artifact_id)
    return DeleteResponse(id=removed.id)
