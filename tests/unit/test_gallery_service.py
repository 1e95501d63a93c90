import asyncio

import pytest

from event_gallery.core.exceptions import (
    AuthenticationRequired,
    ImageNotFound,
    StorageError,
)
from event_gallery.models.enums import GalleryStatus
from event_gallery.models.gallery import SessionContext, UploadFile
from event_gallery.services.face.grouping import PerFaceGroupingStrategy
from event_gallery.services.gallery.service import (
    NO_IMAGES_MESSAGE,
    EventGalleryService,
    GalleryManager,
)
from event_gallery.services.gallery.state import GalleryStateStore
from event_gallery.services.storage.s3 import S3Service
from tests.fakes import EVENT_ID, PREFIX, FakeStorage

SECOND_PREFIX = f"events/private/{EVENT_ID}/images"
SESSION = SessionContext(user_email="guest@example.com", session_id="sess-1")


@pytest.fixture
def storage(images):
    return FakeStorage(images)


@pytest.fixture
def service(storage, gateway):
    store = GalleryStateStore(EVENT_ID, PerFaceGroupingStrategy(gateway))
    return EventGalleryService(
        EVENT_ID, storage, store, prefixes=[PREFIX], rollback_failed_deletes=False
    )


def _grouped_keys(snapshot):
    return [{img.key for img in group.images} for group in snapshot.groups]


# ============================================================================
# Refresh
# ============================================================================

def test_refresh_lists_and_groups(service, images):
    a, b, c = images

    asyncio.run(service.refresh())
    snapshot = service.snapshot()

    assert snapshot.status == GalleryStatus.ready
    assert snapshot.image_count == 3
    assert {a.key, b.key} in _grouped_keys(snapshot)
    assert {c.key} in _grouped_keys(snapshot)
    assert snapshot.ungrouped == []


def test_refresh_ignores_failed_prefix_when_another_has_images(service, storage):
    service.prefixes = [SECOND_PREFIX, PREFIX]
    storage.fail_list_prefixes.add(SECOND_PREFIX)

    asyncio.run(service.refresh())

    assert service.store.status == GalleryStatus.ready
    assert len(service.store.images) == 3


def test_refresh_raises_when_every_prefix_fails(service, storage):
    storage.fail_list_prefixes.add(PREFIX)

    with pytest.raises(StorageError):
        asyncio.run(service.refresh())

    snapshot = service.snapshot()
    assert snapshot.status == GalleryStatus.error
    assert "AccessDenied" in snapshot.message


def test_refresh_without_images_reports_empty_event(gateway):
    store = GalleryStateStore(EVENT_ID, PerFaceGroupingStrategy(gateway))
    service = EventGalleryService(EVENT_ID, FakeStorage(), store, prefixes=[PREFIX])

    asyncio.run(service.refresh())

    assert service.store.status == GalleryStatus.error
    assert service.store.message == NO_IMAGES_MESSAGE
    assert not any(call[0] == "index_faces" for call in gateway.calls)


# ============================================================================
# Upload
# ============================================================================

def test_upload_requires_session(service, storage):
    files = [UploadFile(filename="d.jpg", content=b"jpeg")]

    with pytest.raises(AuthenticationRequired):
        asyncio.run(service.upload_images(files, SessionContext()))
    with pytest.raises(AuthenticationRequired):
        asyncio.run(service.upload_images(files, None))

    assert storage.uploads == []


def test_upload_stores_and_regroups(service, storage, gateway, images):
    a, b, c = images
    asyncio.run(service.refresh())
    files = [UploadFile(filename="d.jpg", content=b"x" * 100, content_type="image/jpeg")]

    def people_for_new_keys():
        for upload in storage.uploads:
            gateway.people.setdefault(upload["key"], ["alice"])

    original_upload = storage.upload_file

    def upload_and_describe(*args, **kwargs):
        image = original_upload(*args, **kwargs)
        people_for_new_keys()
        gateway.delays[image.key] = 0.02
        return image

    storage.upload_file = upload_and_describe

    uploaded = asyncio.run(service.upload_images(files, SESSION))

    assert len(uploaded) == 1
    d = uploaded[0]
    assert d.key.startswith(f"events/shared/{EVENT_ID}/images/")
    assert d.key.endswith("-d.jpg")
    metadata = storage.uploads[0]["metadata"]
    assert metadata["event-id"] == EVENT_ID
    assert metadata["session-id"] == "sess-1"
    assert "upload-date" in metadata
    assert storage.uploads[0]["content_type"] == "image/jpeg"

    snapshot = service.snapshot()
    assert {a.key, b.key, d.key} in _grouped_keys(snapshot)
    assert snapshot.image_count == 4
    assert snapshot.upload_progress == 0


def test_upload_partial_failure_regroups_successes_and_raises(service, storage):
    asyncio.run(service.refresh())
    storage.fail_upload_names.add("bad.jpg")
    files = [
        UploadFile(filename="good.jpg", content=b"1234"),
        UploadFile(filename="bad.jpg", content=b"5678"),
    ]

    with pytest.raises(StorageError):
        asyncio.run(service.upload_images(files, SESSION))

    keys = [img.key for img in service.store.images]
    assert any(key.endswith("-good.jpg") for key in keys)
    assert not any(key.endswith("-bad.jpg") for key in keys)
    assert service.store.message == "Failed to upload images. Please try again."


def test_upload_same_filename_twice_keeps_both(mocker, gateway):
    s3_client = mocker.MagicMock()
    storage = S3Service(client=s3_client, bucket_name="test-bucket")
    store = GalleryStateStore(EVENT_ID, PerFaceGroupingStrategy(gateway))
    service = EventGalleryService(EVENT_ID, storage, store, prefixes=[PREFIX])
    files = [
        UploadFile(filename="IMG_0001.jpg", content=b"first"),
        UploadFile(filename="IMG_0001.jpg", content=b"second"),
    ]

    uploaded = asyncio.run(service.upload_images(files, SESSION))

    stored_keys = [call.args[2] for call in s3_client.upload_fileobj.call_args_list]
    assert len(set(stored_keys)) == 2
    assert all(key.endswith("-IMG_0001.jpg") for key in stored_keys)
    assert len({image.key for image in uploaded}) == 2
    assert len(service.store.images) == 2


def test_upload_progress_tracks_transfer_then_resets(service, storage):
    seen = []
    original_upload = storage.upload_file

    def recording_upload(file_data, s3_key, content_type, metadata, callback):
        def recording_callback(amount):
            callback(amount)
            seen.append((service.uploading, service.progress.percentage))
        return original_upload(file_data, s3_key, content_type, metadata, recording_callback)

    storage.upload_file = recording_upload
    files = [UploadFile(filename="big.jpg", content=b"x" * 10)]

    asyncio.run(service.upload_images(files, SESSION))

    assert seen == [(True, 50), (True, 100)]
    assert service.uploading is False
    assert service.progress.percentage == 0


# ============================================================================
# Delete
# ============================================================================

def test_delete_removes_from_storage_and_groups(service, storage, images):
    a, b, c = images
    asyncio.run(service.refresh())

    asyncio.run(service.delete_image(a.key))

    snapshot = service.snapshot()
    assert storage.deleted == [a.key]
    assert {b.key} in _grouped_keys(snapshot)
    assert snapshot.image_count == 2
    assert snapshot.deleting == []


def test_delete_marks_key_while_remote_call_runs(service, storage, images):
    a = images[0]
    asyncio.run(service.refresh())
    observed = []

    def slow_delete(key):
        observed.append(sorted(service.store.deleting))
        storage.deleted.append(key)

    storage.delete_object = slow_delete

    asyncio.run(service.delete_image(a.key))

    assert observed == [[a.key]]
    assert service.store.deleting == set()


def test_failed_delete_keeps_optimistic_removal(service, storage, images):
    a = images[0]
    asyncio.run(service.refresh())
    storage.fail_delete_keys.add(a.key)

    with pytest.raises(StorageError):
        asyncio.run(service.delete_image(a.key))

    assert service.store.get_image(a.key) is None
    assert service.store.message == "Failed to delete image. Please try again."
    assert service.store.deleting == set()


def test_failed_delete_rolls_back_when_configured(service, storage, images):
    a = images[0]
    asyncio.run(service.refresh())
    service.rollback_failed_deletes = True
    storage.fail_delete_keys.add(a.key)

    with pytest.raises(StorageError):
        asyncio.run(service.delete_image(a.key))

    assert service.store.get_image(a.key) == a
    assert a in service.store.ungrouped


def test_delete_removes_image_faces_from_collection(service, gateway, images):
    a, b, c = images
    asyncio.run(service.refresh())
    face_a = gateway.face_id(a)

    asyncio.run(service.delete_image(a.key))

    assert ("delete_faces", (face_a,)) in gateway.calls
    assert face_a not in gateway.faces
    assert gateway.face_id(b) in gateway.faces


def test_failed_delete_keeps_image_faces(service, storage, gateway, images):
    a = images[0]
    asyncio.run(service.refresh())
    storage.fail_delete_keys.add(a.key)

    with pytest.raises(StorageError):
        asyncio.run(service.delete_image(a.key))

    assert not any(call[0] == "delete_faces" for call in gateway.calls)
    assert gateway.face_id(a) in gateway.faces


def test_delete_unknown_image(service):
    asyncio.run(service.refresh())

    with pytest.raises(ImageNotFound):
        asyncio.run(service.delete_image("events/shared/event-123/images/nope.jpg"))


# ============================================================================
# Manager
# ============================================================================

def test_manager_keeps_one_service_per_event(storage, gateway):
    manager = GalleryManager(storage=storage, gateway=gateway, strategy="whole_image")

    first = manager.get("event-1")

    assert manager.get("event-1") is first
    assert manager.get("event-2") is not first
    assert first.store.collection_id == "event-1"
    assert first.store.grouping.name == "whole_image"
    assert first.prefixes == ["events/shared/event-1/images"]
