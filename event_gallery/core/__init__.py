"""
Core package initializer.

This package provides the error taxonomy shared by the storage,
recognition and gallery services.
"""

from .exceptions import (
    GalleryError,
    StorageError,
    RecognitionError,
    AuthenticationRequired,
    ImageNotFound,
)

__all__ = [
    "GalleryError",
    "StorageError",
    "RecognitionError",
    "AuthenticationRequired",
    "ImageNotFound",
]
