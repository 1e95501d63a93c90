"""
Services package initializer.

Re-exports the gallery entry points so callers can import from
`event_gallery.services` instead of deep module paths.
"""

from .gallery.service import EventGalleryService, GalleryManager
from .storage.s3 import S3Service

__all__ = [
    "EventGalleryService",
    "GalleryManager",
    "S3Service",
]
