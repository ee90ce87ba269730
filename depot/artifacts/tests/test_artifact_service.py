"""Consistency behaviour of publish / replace / remove under store failures."""
from typing import Dict, Set

import pytest

from depot.artifacts.events import RecordingSink
from depot.artifacts.models import ArtifactPatch, BlobUpload, PublishRequest
from depot.artifacts.repository import InMemoryArtifactCatalog
from depot.artifacts.service import ArtifactService
from depot.common.errors import ArtifactNotFound, CatalogFault, StorageFault, ValidationError
from depot.storage.blob_store import InMemoryBlobStore, key_from_url
from depot.storage.keys import KeyGenerator

BASE = "https://cdn.test"


class FlakyBlobStore(InMemoryBlobStore):
    """In-memory store that fails puts/deletes for chosen key prefixes."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_put: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.calls = []

    def put(self, key, content, content_type):
        self.calls.append(("put", key))
        if any(key.startswith(p) for p in self.fail_put):
            raise StorageFault("put", key)
        super().put(key, content, content_type)

    def delete(self, key):
        self.calls.append(("delete", key))
        if any(key.startswith(p) for p in self.fail_delete):
            raise StorageFault("delete", key)
        super().delete(key)


class FlakyCatalog(InMemoryArtifactCatalog):
    """In-memory catalog whose operations can be made to fail N times."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: Dict[str, int] = {}
        self.calls = []

    def _maybe_fail(self, op):
        self.calls.append(op)
        remaining = self.failures.get(op, 0)
        if remaining:
            self.failures[op] = remaining - 1
            raise ConnectionError(f"{op} unavailable")

    def create(self, fields):
        self._maybe_fail("create")
        return super().create(fields)

    def update(self, artifact_id, patch):
        self._maybe_fail("update")
        return super().update(artifact_id, patch)

    def delete(self, artifact_id):
        self._maybe_fail("delete")
        return super().delete(artifact_id)


class TickingClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture
def blobs():
    return FlakyBlobStore()


@pytest.fixture
def catalog():
    return FlakyCatalog()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def service(blobs, catalog, sink):
    return ArtifactService(
        catalog=catalog,
        blobs=blobs,
        keys=KeyGenerator(clock=TickingClock()),
        public_base=BASE,
        event_sink=sink,
        catalog_delete_attempts=3,
    )


def _request(**overrides):
    data = {"description": "Field build", "package_name": "com.example.app", "version": "1.0", "version_code": 1}
    data.update(overrides)
    return PublishRequest(**data)


def _apk(name="app v1.apk", content=b"apk-bytes"):
    return BlobUpload(filename=name, content=content, content_type="application/vnd.android.package-archive")


def _icon(name="icon.png"):
    return BlobUpload(filename=name, content=b"png-bytes", content_type="image/png")


# --- publish ---

def test_publish_without_icon(service, blobs):
    artifact = service.publish(_request(), _apk())
    assert artifact.blob_key == "apks/1700000000001-app_v1.apk"
    assert artifact.blob_url == "https://cdn.test/apks%2F1700000000001-app_v1.apk"
    assert artifact.icon_key is None
    assert artifact.icon_url is None
    assert artifact.title == "app v1.apk"
    assert blobs.exists(key_from_url(BASE, artifact.blob_url))


def test_publish_with_icon_and_title(service, blobs):
    artifact = service.publish(_request(title="  Field App "), _apk(), _icon())
    assert artifact.title == "Field App"
    assert artifact.icon_key.startswith("icons/")
    assert blobs.exists(artifact.icon_key)
    assert key_from_url(BASE, artifact.icon_url) == artifact.icon_key


@pytest.mark.parametrize(
    "request_kwargs, apk, field",
    [
        ({}, None, "apk"),
        ({}, BlobUpload(filename="a.apk", content=b""), "apk"),
        ({"package_name": None}, _apk(), "packageName"),
        ({"package_name": "  "}, _apk(), "packageName"),
        ({"description": ""}, _apk(), "description"),
        ({"version_code": -1}, _apk(), "versionCode"),
    ],
)
def test_publish_validation_touches_no_store(service, blobs, catalog, request_kwargs, apk, field):
    with pytest.raises(ValidationError) as exc_info:
        service.publish(_request(**request_kwargs), apk)
    assert exc_info.value.details["field"] == field
    assert blobs.calls == []
    assert catalog.calls == []


def test_publish_blob_failure_creates_no_record(service, blobs, catalog):
    blobs.fail_put.add("apks/")
    with pytest.raises(StorageFault):
        service.publish(_request(), _apk(), _icon())
    assert service.list_artifacts() == []
    assert catalog.calls == []
    assert blobs.keys() == []


def test_publish_icon_failure_is_tolerated(service, blobs, sink):
    blobs.fail_put.add("icons/")
    artifact = service.publish(_request(), _apk(), _icon())
    assert artifact.icon_key is None
    assert artifact.icon_url is None
    assert blobs.exists(artifact.blob_key)
    assert "icon_upload_failed" in sink.steps("publish")


def test_publish_catalog_failure_leaves_only_orphans(service, blobs, catalog, sink):
    catalog.failures["create"] = 1
    with pytest.raises(CatalogFault):
        service.publish(_request(), _apk(), _icon())
    assert service.list_artifacts() == []
    orphan_event = [e for e in sink.events if e.step == "orphaned_objects"][0]
    assert sorted(orphan_event.keys) == blobs.keys()


def test_same_millisecond_identical_filenames_collide():
    # Known limitation: the key generator alone does not guarantee uniqueness.
    blobs = InMemoryBlobStore()
    service = ArtifactService(
        catalog=InMemoryArtifactCatalog(),
        blobs=blobs,
        keys=KeyGenerator(clock=lambda: 1_000),
        public_base=BASE,
        event_sink=RecordingSink(),
    )
    first = service.publish(_request(), _apk(content=b"one"))
    second = service.publish(_request(), _apk(content=b"two"))
    assert first.blob_key == second.blob_key
    assert blobs.get(first.blob_key) == b"two"


def test_unique_suffix_keeps_same_millisecond_uploads_apart():
    blobs = InMemoryBlobStore()
    service = ArtifactService(
        catalog=InMemoryArtifactCatalog(),
        blobs=blobs,
        keys=KeyGenerator(clock=lambda: 1_000, unique_suffix=True),
        public_base=BASE,
        event_sink=RecordingSink(),
    )
    first = service.publish(_request(), _apk(content=b"one"))
    second = service.publish(_request(), _apk(content=b"two"))
    assert first.blob_key != second.blob_key
    assert blobs.get(first.blob_key) == b"one"


# --- replace ---

def test_replace_metadata_only_keeps_keys(service, blobs):
    original = service.publish(_request(), _apk(), _icon())
    blobs.calls.clear()
    updated = service.replace(original.id, ArtifactPatch(title="New"))
    assert updated.title == "New"
    assert updated.blob_key == original.blob_key
    assert updated.icon_key == original.icon_key
    assert updated.description == original.description
    assert updated.created_at == original.created_at
    assert updated.updated_at >= original.updated_at
    assert blobs.calls == []


def test_replace_blob_rotates_key_and_deletes_old(service, blobs):
    original = service.publish(_request(), _apk())
    updated = service.replace(original.id, None, blob=_apk("app v2.apk", b"v2"))
    assert updated.blob_key != original.blob_key
    assert updated.blob_key.endswith("-app_v2.apk")
    assert key_from_url(BASE, updated.blob_url) == updated.blob_key
    assert blobs.exists(updated.blob_key)
    assert not blobs.exists(original.blob_key)
    # New object is written before the old one is removed.
    ops = [c for c in blobs.calls if c[1] in {updated.blob_key, original.blob_key}]
    assert ops[-2:] == [("put", updated.blob_key), ("delete", original.blob_key)]


def test_replace_icon_independently(service, blobs):
    original = service.publish(_request(), _apk(), _icon())
    updated = service.replace(original.id, ArtifactPatch(), icon=_icon("icon2.png"))
    assert updated.blob_key == original.blob_key
    assert updated.icon_key != original.icon_key
    assert blobs.exists(updated.icon_key)
    assert not blobs.exists(original.icon_key)


def test_replace_adds_icon_when_none_existed(service, blobs):
    original = service.publish(_request(), _apk())
    updated = service.replace(original.id, None, icon=_icon())
    assert updated.icon_key and blobs.exists(updated.icon_key)
    assert ("delete", None) not in blobs.calls


def test_replace_tolerates_old_blob_delete_failure(service, blobs, sink):
    original = service.publish(_request(), _apk())
    blobs.fail_delete.add(original.blob_key)
    updated = service.replace(original.id, ArtifactPatch(version="2.0"), blob=_apk("v2.apk"))
    assert updated.version == "2.0"
    assert updated.blob_key != original.blob_key
    assert service.get_artifact(original.id).blob_key == updated.blob_key
    assert "stale_object_delete_failed" in sink.steps("replace")


def test_replace_blob_upload_failure_changes_nothing(service, blobs):
    original = service.publish(_request(), _apk())
    blobs.fail_put.add("apks/")
    with pytest.raises(StorageFault):
        service.replace(original.id, ArtifactPatch(title="New"), blob=_apk("v2.apk"))
    current = service.get_artifact(original.id)
    assert current == original
    assert blobs.exists(original.blob_key)


def test_replace_catalog_failure_keeps_old_objects_referenced(service, blobs, catalog, sink):
    original = service.publish(_request(), _apk(), _icon())
    catalog.failures["update"] = 1
    with pytest.raises(CatalogFault):
        service.replace(original.id, ArtifactPatch(title="New"), blob=_apk("v2.apk"), icon=_icon("i2.png"))
    current = service.get_artifact(original.id)
    assert current.blob_key == original.blob_key
    assert blobs.exists(current.blob_key)
    assert blobs.exists(current.icon_key)
    assert "orphaned_objects" in sink.steps("replace")


def test_replace_icon_upload_failure_keeps_old_icon(service, blobs, sink):
    original = service.publish(_request(), _apk(), _icon())
    blobs.fail_put.add("icons/")
    updated = service.replace(original.id, ArtifactPatch(title="New"), icon=_icon("i2.png"))
    assert updated.title == "New"
    assert updated.icon_key == original.icon_key
    assert blobs.exists(original.icon_key)
    assert "icon_upload_failed" in sink.steps("replace")


def test_replace_same_key_is_not_deleted():
    blobs = InMemoryBlobStore()
    service = ArtifactService(
        catalog=InMemoryArtifactCatalog(),
        blobs=blobs,
        keys=KeyGenerator(clock=lambda: 7),
        public_base=BASE,
        event_sink=RecordingSink(),
    )
    original = service.publish(_request(), _apk(content=b"v1"))
    updated = service.replace(original.id, None, blob=_apk(content=b"v2"))
    assert updated.blob_key == original.blob_key
    assert blobs.get(updated.blob_key) == b"v2"


def test_replace_unknown_id(service, blobs):
    with pytest.raises(ArtifactNotFound):
        service.replace("missing", ArtifactPatch(title="x"), blob=_apk())
    assert blobs.calls == []


def test_replace_rejects_blank_required_fields(service, blobs):
    original = service.publish(_request(), _apk())
    blobs.calls.clear()
    with pytest.raises(ValidationError):
        service.replace(original.id, ArtifactPatch(package_name=" "))
    with pytest.raises(ValidationError):
        service.replace(original.id, None, blob=BlobUpload(filename="a.apk", content=b""))
    assert blobs.calls == []


# --- remove ---

def test_remove_deletes_objects_and_record(service, blobs):
    artifact = service.publish(_request(), _apk(), _icon())
    removed = service.remove(artifact.id)
    assert removed.id == artifact.id
    with pytest.raises(ArtifactNotFound):
        service.get_artifact(artifact.id)
    assert blobs.keys() == []


def test_remove_unknown_id_makes_no_blob_calls(service, blobs):
    with pytest.raises(ArtifactNotFound):
        service.remove("missing")
    assert blobs.calls == []


def test_remove_tolerates_blob_delete_failure(service, blobs, sink):
    artifact = service.publish(_request(), _apk(), _icon())
    blobs.fail_delete.add("apks/")
    service.remove(artifact.id)
    with pytest.raises(ArtifactNotFound):
        service.get_artifact(artifact.id)
    assert not blobs.exists(artifact.icon_key)
    assert "blob_delete_failed" in sink.steps("remove")


def test_remove_retries_catalog_delete(service, catalog, sink):
    artifact = service.publish(_request(), _apk())
    catalog.failures["delete"] = 2
    service.remove(artifact.id)
    assert catalog.calls.count("delete") == 3
    assert sink.steps("remove").count("catalog_delete_retry") == 2
    with pytest.raises(ArtifactNotFound):
        service.get_artifact(artifact.id)


def test_remove_reports_catalog_fault_after_retries(service, catalog, sink):
    artifact = service.publish(_request(), _apk())
    catalog.failures["delete"] = 5
    with pytest.raises(CatalogFault):
        service.remove(artifact.id)
    assert catalog.calls.count("delete") == 3
    assert "dangling_reference" in sink.steps("remove")


def test_event_sink_failure_does_not_break_operations(blobs, catalog):
    def broken_sink(event):
        raise RuntimeError("sink down")

    service = ArtifactService(catalog=catalog, blobs=blobs, keys=KeyGenerator(clock=TickingClock()), public_base=BASE, event_sink=broken_sink)
    artifact = service.publish(_request(), _apk())
    assert service.get_artifact(artifact.id) == artifact


def test_empty_icon_is_skipped_with_event(service, blobs, sink):
    empty_icon = BlobUpload(filename="icon.png", content=b"", content_type="image/png")
    artifact = service.publish(_request(), _apk(), empty_icon)
    assert artifact.icon_key is None
    assert not any(key.startswith("icons/") for key in blobs.keys())
    assert "icon_skipped" in sink.steps("publish")

    updated = service.replace(artifact.id, ArtifactPatch(title="New"), icon=empty_icon)
    assert updated.icon_key is None
    assert updated.title == "New"
    assert "icon_skipped" in sink.steps("replace")


def test_remove_single_attempt_reports_dangling_reference(blobs, catalog, sink):
    service = ArtifactService(
        catalog=catalog,
        blobs=blobs,
        keys=KeyGenerator(clock=TickingClock()),
        public_base=BASE,
        event_sink=sink,
        catalog_delete_attempts=1,
    )
    artifact = service.publish(_request(), _apk())
    catalog.failures["delete"] = 1
    with pytest.raises(CatalogFault):
        service.remove(artifact.id)
    assert catalog.calls.count("delete") == 1
    assert "catalog_delete_retry" not in sink.steps("remove")
    dangling = [e for e in sink.events if e.step == "dangling_reference"]
    assert dangling and dangling[0].keys == [artifact.blob_key]
