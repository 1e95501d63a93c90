"""Event gallery API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, File, status
from fastapi import UploadFile as IncomingFile

from event_gallery.api.deps import get_gallery_service, require_session
from event_gallery.core.exceptions import GalleryError
from event_gallery.models.enums import GalleryStatus
from event_gallery.models.gallery import SessionContext, UploadFile
from event_gallery.schemas.gallery import (
    DeleteResponse,
    GallerySnapshot,
    ImageResponse,
    UploadResponse,
)
from event_gallery.services.gallery.service import EventGalleryService

logger = logging.getLogger(__name__)

router = APIRouter()


async def refresh_gallery(service: EventGalleryService) -> None:
    """Background refresh; failures are kept in the gallery's error state."""
    try:
        await service.refresh()
    except GalleryError as e:
        logger.warning(f"Refresh failed for event {service.event_id}: {e}")


@router.get(
    "/{event_id}/gallery",
    response_model=GallerySnapshot,
    summary="Get event gallery",
    description="Face groups, ungrouped images, upload progress and in-flight deletes",
)
async def get_gallery(
    background_tasks: BackgroundTasks,
    service: EventGalleryService = Depends(get_gallery_service),
):
    """
    Return the current gallery view.

    The first request for an event schedules the initial load; until it
    completes the snapshot reports a loading status.
    """
    if service.store.status == GalleryStatus.idle:
        service.store.status = GalleryStatus.loading
        background_tasks.add_task(refresh_gallery, service)
    return service.snapshot()


@router.post(
    "/{event_id}/refresh",
    response_model=GallerySnapshot,
    summary="Reload event images",
    description="Relist the event's images and regroup them from scratch",
    status_code=status.HTTP_202_ACCEPTED,
)
async def refresh_event(
    background_tasks: BackgroundTasks,
    service: EventGalleryService = Depends(get_gallery_service),
):
    background_tasks.add_task(refresh_gallery, service)
    return service.snapshot()


@router.post(
    "/{event_id}/images",
    response_model=UploadResponse,
    summary="Upload event images",
    description="Upload one or more images, then regroup the whole event",
    status_code=status.HTTP_201_CREATED,
)
async def upload_images(
    files: List[IncomingFile] = File(...),
    session: SessionContext = Depends(require_session),
    service: EventGalleryService = Depends(get_gallery_service),
):
    uploads = []
    for incoming in files:
        uploads.append(UploadFile(
            filename=incoming.filename or "image.jpg",
            content=await incoming.read(),
            content_type=incoming.content_type or "application/octet-stream",
        ))

    uploaded = await service.upload_images(uploads, session)

    return UploadResponse(
        uploaded=[ImageResponse(key=image.key, url=image.url) for image in uploaded],
        gallery=service.snapshot(),
    )


@router.delete(
    "/{event_id}/images/{key:path}",
    response_model=DeleteResponse,
    summary="Delete event image",
    description="Delete an image from storage and from every face group",
)
async def delete_image(
    key: str,
    service: EventGalleryService = Depends(get_gallery_service),
):
    image = await service.delete_image(key)
    return DeleteResponse(key=image.key, deleted=True, gallery=service.snapshot())
