"""Enums for gallery state."""
import enum


class GalleryStatus(str, enum.Enum):
    """Lifecycle of an event gallery view."""
    idle = "idle"
    loading = "loading"
    ready = "ready"
    error = "error"
