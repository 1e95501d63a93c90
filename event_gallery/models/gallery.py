"""
Gallery domain objects.

Plain dataclasses shared by storage, recognition and grouping. Nothing here
performs I/O.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class EventImage:
    """A stored photo: unique storage key plus its retrieval URL."""
    key: str
    url: str


@dataclass(frozen=True)
class BoundingBox:
    """Face box in coordinates relative to the image size (0..1)."""
    width: float
    height: float
    left: float
    top: float

    @classmethod
    def from_rekognition(cls, box: Optional[Dict[str, float]]) -> Optional["BoundingBox"]:
        if not box:
            return None
        return cls(
            width=float(box.get("Width", 0.0)),
            height=float(box.get("Height", 0.0)),
            left=float(box.get("Left", 0.0)),
            top=float(box.get("Top", 0.0)),
        )


@dataclass(frozen=True)
class IndexedFace:
    """One face returned by the recognition service's index operation."""
    face_id: str
    bounding_box: Optional[BoundingBox] = None


@dataclass(frozen=True)
class FaceRecord:
    """A detected face tied back to the image it was found in."""
    face_id: str
    image: EventImage
    bounding_box: Optional[BoundingBox] = None


@dataclass(frozen=True)
class FaceMatch:
    matched_face_id: str
    similarity: float


@dataclass(frozen=True)
class ImageMatch:
    matched_external_tag: str
    similarity: float


# A group member is a face (per-face strategy) or a whole image (whole-image strategy).
GroupMember = Union[FaceRecord, EventImage]

GroupPartition = Dict[str, List[GroupMember]]


def member_image(member: GroupMember) -> EventImage:
    """Image a group member belongs to."""
    if isinstance(member, FaceRecord):
        return member.image
    return member


def unique_images(members: List[GroupMember]) -> List[EventImage]:
    """Images of a group, de-duplicated, in first-seen order."""
    seen = set()
    images = []
    for member in members:
        image = member_image(member)
        if image.key not in seen:
            seen.add(image.key)
            images.append(image)
    return images


@dataclass
class GroupingResult:
    """Outcome of one grouping pass over an image set."""
    groups: GroupPartition = field(default_factory=dict)
    ungrouped: List[EventImage] = field(default_factory=list)
    face_records: List[FaceRecord] = field(default_factory=list)

    def grouped_keys(self) -> set:
        return {
            member_image(member).key
            for members in self.groups.values()
            for member in members
        }


@dataclass(frozen=True)
class UploadFile:
    """A file chosen for upload."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class SessionContext:
    """Participant session attached to upload requests."""
    user_email: Optional[str] = None
    session_id: Optional[str] = None
