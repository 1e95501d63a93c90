from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from event_gallery.models.enums import GalleryStatus


class ImageResponse(BaseModel):
    """Schema for a stored event image."""
    key: str
    url: str

    model_config = ConfigDict(from_attributes=True)


class FaceGroupResponse(BaseModel):
    """Schema for one inferred person group."""
    group_id: str
    face_count: int = Field(..., ge=0, description="Face records (or images) in the group")
    images: List[ImageResponse] = Field(..., description="Unique images, first-seen order")


class GallerySnapshot(BaseModel):
    """Everything the presentation layer renders for an event."""
    event_id: str
    status: GalleryStatus
    message: Optional[str] = None
    image_count: int = Field(0, ge=0)
    groups: List[FaceGroupResponse] = Field(default_factory=list)
    ungrouped: List[ImageResponse] = Field(default_factory=list)
    deleting: List[str] = Field(default_factory=list, description="Keys mid-deletion")
    upload_progress: int = Field(0, ge=0, le=100)


class UploadResponse(BaseModel):
    """Schema for an upload batch result."""
    uploaded: List[ImageResponse]
    gallery: GallerySnapshot


class DeleteResponse(BaseModel):
    """Schema for a delete result."""
    key: str
    deleted: bool
    gallery: GallerySnapshot
