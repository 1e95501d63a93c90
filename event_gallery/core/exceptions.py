"""Error taxonomy for the gallery services."""
from typing import Optional


class GalleryError(Exception):
    """Base exception for gallery errors."""
    pass


class StorageError(GalleryError):
    """Object store list/put/delete failure."""
    pass


class RecognitionError(GalleryError):
    """Any failure of a face-recognition service call."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class AuthenticationRequired(GalleryError):
    """Participant flow attempted without a session context."""
    pass


class ImageNotFound(GalleryError):
    """Image key not part of the event's image set."""
    pass
