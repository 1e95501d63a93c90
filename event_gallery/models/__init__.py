"""Domain models for the event gallery."""

from .enums import GalleryStatus
from .gallery import (
    EventImage,
    BoundingBox,
    IndexedFace,
    FaceRecord,
    FaceMatch,
    ImageMatch,
    GroupMember,
    GroupPartition,
    GroupingResult,
    UploadFile,
    SessionContext,
    member_image,
    unique_images,
)

__all__ = [
    "GalleryStatus",
    "EventImage",
    "BoundingBox",
    "IndexedFace",
    "FaceRecord",
    "FaceMatch",
    "ImageMatch",
    "GroupMember",
    "GroupPartition",
    "GroupingResult",
    "UploadFile",
    "SessionContext",
    "member_image",
    "unique_images",
]
