"""
Event Gallery Service
=====================

Orchestrates one event's gallery: listing stored images, uploading new
ones, deleting, and running the grouping pass through the state store.

Triggers:
- event selected/changed -> refresh()
- files chosen for upload -> upload_images()
- image deletion requested -> delete_image()
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from event_gallery.app.config import settings
from event_gallery.core.exceptions import (
    AuthenticationRequired,
    ImageNotFound,
    StorageError,
)
from event_gallery.models.gallery import (
    EventImage,
    GroupingResult,
    SessionContext,
    UploadFile,
    unique_images,
)
from event_gallery.schemas.gallery import (
    FaceGroupResponse,
    GallerySnapshot,
    ImageResponse,
)
from event_gallery.services.face.grouping import create_grouping_strategy
from event_gallery.services.face.recognition import RecognitionGateway, RekognitionGateway
from event_gallery.services.gallery.state import GalleryStateStore
from event_gallery.services.storage.progress import UploadProgress
from event_gallery.services.storage.s3 import S3Service
from event_gallery.utils.concurrency import run_blocking

logger = logging.getLogger(__name__)

NO_IMAGES_MESSAGE = "No images found for this event."
UPLOAD_FAILED_MESSAGE = "Failed to upload images. Please try again."
DELETE_FAILED_MESSAGE = "Failed to delete image. Please try again."
AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in."


def _image_response(image: EventImage) -> ImageResponse:
    return ImageResponse(key=image.key, url=image.url)


class EventGalleryService:
    """Storage + grouping orchestration for a single event."""

    def __init__(
        self,
        event_id: str,
        storage: S3Service,
        store: GalleryStateStore,
        prefixes: Optional[List[str]] = None,
        rollback_failed_deletes: Optional[bool] = None,
    ):
        self.event_id = event_id
        self.storage = storage
        self.store = store
        self.prefixes = prefixes or settings.event_prefixes(event_id)
        if rollback_failed_deletes is None:
            rollback_failed_deletes = settings.ROLLBACK_FAILED_DELETES
        self.rollback_failed_deletes = rollback_failed_deletes
        self.progress = UploadProgress()
        self.uploading = False

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _list_event_images(self) -> List[EventImage]:
        """
        List images from every prefix.

        A failing prefix is skipped; its error is raised only when no prefix
        yielded any image.
        """
        images: List[EventImage] = []
        fetch_error: Optional[StorageError] = None

        for prefix in self.prefixes:
            try:
                images.extend(await run_blocking(self.storage.list_images, prefix))
            except StorageError as e:
                logger.error(f"Error fetching from path {prefix}: {e}")
                fetch_error = e
                continue

        if not images and fetch_error is not None:
            raise fetch_error
        return images

    async def refresh(self) -> GroupingResult:
        """Reload the event's image set and regroup it from scratch."""
        try:
            images = await self._list_event_images()
        except StorageError as e:
            self.store.fail(str(e))
            raise

        if not images:
            logger.info(f"No images found for event {self.event_id}")
            self.store.fail(NO_IMAGES_MESSAGE)
            return self.store.result

        return await self.store.load(images)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_images(
        self,
        files: Sequence[UploadFile],
        session: Optional[SessionContext],
    ) -> List[EventImage]:
        """
        Upload files concurrently, then regroup the whole image set.

        Raises:
            AuthenticationRequired: No participant session; nothing is uploaded
            StorageError: At least one file failed (the rest are still grouped)
        """
        if session is None or not session.user_email:
            raise AuthenticationRequired(AUTH_REQUIRED_MESSAGE)
        if not files:
            return []

        uploaded_at = datetime.now(timezone.utc).isoformat()
        metadata = {
            'event-id': self.event_id,
            'session-id': session.session_id or '',
            'upload-date': uploaded_at,
        }

        self.uploading = True
        self.progress.reset()
        keys = [self.storage.generate_image_key(self.event_id, f.filename) for f in files]
        for key, upload in zip(keys, files):
            self.progress.register(key, len(upload.content))

        async def _upload(key: str, upload: UploadFile) -> EventImage:
            image = await run_blocking(
                self.storage.upload_file,
                upload.content,
                key,
                upload.content_type,
                metadata,
                self.progress.callback_for(key),
            )
            self.progress.complete(key)
            return image

        try:
            outcomes = await asyncio.gather(
                *(_upload(key, upload) for key, upload in zip(keys, files)),
                return_exceptions=True,
            )
        finally:
            self.uploading = False
            self.progress.reset()

        uploaded = [o for o in outcomes if isinstance(o, EventImage)]
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        for failure in failures:
            if not isinstance(failure, StorageError):
                raise failure

        logger.info(
            f"Uploaded {len(uploaded)}/{len(files)} images to event {self.event_id}"
        )

        if uploaded:
            await self.store.add_and_regroup(uploaded)

        if failures:
            self.store.set_message(UPLOAD_FAILED_MESSAGE)
            raise StorageError(f"{len(failures)} of {len(files)} uploads failed: {failures[0]}")

        return uploaded

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_image(self, key: str) -> EventImage:
        """
        Delete an image from storage and retract it from every group.

        Local state is updated before the remote delete is confirmed. A
        failed remote delete is surfaced and, when configured, the image is
        put back. Once storage confirms, the image's faces are removed from
        the recognition collection.
        """
        image = self.store.get_image(key)
        if image is None:
            raise ImageNotFound(f"Image not found: {key}")

        self.store.mark_deleting(key)
        self.store.delete(key)
        try:
            await run_blocking(self.storage.delete_object, key)
        except StorageError:
            self.store.set_message(DELETE_FAILED_MESSAGE)
            if self.rollback_failed_deletes:
                self.store.restore(image)
            raise
        finally:
            self.store.unmark_deleting(key)

        await self.store.grouping.retire_faces(self.store.collection_id, [key])
        return image

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def snapshot(self) -> GallerySnapshot:
        groups = [
            FaceGroupResponse(
                group_id=group_id,
                face_count=len(members),
                images=[_image_response(img) for img in unique_images(members)],
            )
            for group_id, members in self.store.groups.items()
        ]
        return GallerySnapshot(
            event_id=self.event_id,
            status=self.store.status,
            message=self.store.message,
            image_count=len(self.store.images),
            groups=groups,
            ungrouped=[_image_response(img) for img in self.store.ungrouped],
            deleting=sorted(self.store.deleting),
            upload_progress=self.progress.percentage if self.uploading else 0,
        )


class GalleryManager:
    """One gallery service per event; collection id == event id."""

    def __init__(
        self,
        storage: Optional[S3Service] = None,
        gateway: Optional[RecognitionGateway] = None,
        strategy: Optional[str] = None,
    ):
        self._storage = storage
        self._gateway = gateway
        self.strategy = strategy
        self._services: Dict[str, EventGalleryService] = {}

    @property
    def storage(self) -> S3Service:
        """Lazy-load S3 service."""
        if self._storage is None:
            self._storage = S3Service()
        return self._storage

    @property
    def gateway(self) -> RecognitionGateway:
        """Lazy-load recognition gateway."""
        if self._gateway is None:
            self._gateway = RekognitionGateway()
        return self._gateway

    def get(self, event_id: str) -> EventGalleryService:
        service = self._services.get(event_id)
        if service is None:
            grouping = create_grouping_strategy(self.strategy, gateway=self.gateway)
            store = GalleryStateStore(collection_id=event_id, grouping=grouping)
            service = EventGalleryService(event_id, self.storage, store)
            self._services[event_id] = service
            logger.info(f"Created gallery for event {event_id} ({grouping.name})")
        return service
