"""
Gallery schemas package.

Response models emitted to the presentation layer: the group partition,
the ungrouped images, upload progress and in-flight deletes.
"""

from .gallery import (
    ImageResponse,
    FaceGroupResponse,
    GallerySnapshot,
    UploadResponse,
    DeleteResponse,
)

__all__ = [
    "ImageResponse",
    "FaceGroupResponse",
    "GallerySnapshot",
    "UploadResponse",
    "DeleteResponse",
]
