"""
Gallery state store.

Authoritative in-memory view of one event: the image set, the published
group partition and the keys currently being deleted. Refreshes replace
the partition wholesale once a grouping pass completes; deletions only
subtract.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from event_gallery.models.enums import GalleryStatus
from event_gallery.models.gallery import (
    EventImage,
    GroupingResult,
    member_image,
)
from event_gallery.services.face.grouping import GroupingStrategy

logger = logging.getLogger(__name__)


def _dedupe(images: Iterable[EventImage]) -> List[EventImage]:
    seen: Set[str] = set()
    unique = []
    for image in images:
        if image.key not in seen:
            seen.add(image.key)
            unique.append(image)
    return unique


class GalleryStateStore:
    """Image set, group partition and in-flight deletes for one event."""

    def __init__(self, collection_id: str, grouping: GroupingStrategy):
        self.collection_id = collection_id
        self.grouping = grouping
        self.images: List[EventImage] = []
        self.result = GroupingResult()
        self.status = GalleryStatus.idle
        self.message: Optional[str] = None
        self.deleting: Set[str] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def groups(self) -> Dict[str, list]:
        return self.result.groups

    @property
    def ungrouped(self) -> List[EventImage]:
        return self.result.ungrouped

    def get_image(self, key: str) -> Optional[EventImage]:
        return next((image for image in self.images if image.key == key), None)

    def is_deleting(self, key: str) -> bool:
        return key in self.deleting

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def load(self, images: Sequence[EventImage]) -> GroupingResult:
        """
        Replace the image set and run a full grouping pass.

        The previous partition stays visible, with a loading status, until
        the pass completes and its result is published in one assignment.
        """
        self.images = _dedupe(images)
        self.status = GalleryStatus.loading
        logger.info(f"Grouping {len(self.images)} images for event {self.collection_id}")

        try:
            result = await self.grouping.group(self.collection_id, list(self.images))
        except Exception as e:
            logger.error(f"Grouping pass failed for event {self.collection_id}: {e}", exc_info=True)
            self.status = GalleryStatus.error
            self.message = "Failed to group event images."
            raise

        self.result = self._restrict_to_known_images(result)
        self.status = GalleryStatus.ready
        self.message = None
        return self.result

    async def add_and_regroup(self, new_images: Sequence[EventImage]) -> GroupingResult:
        """Append images then regroup the whole (old + new) set."""
        return await self.load(list(self.images) + list(new_images))

    def _restrict_to_known_images(self, result: GroupingResult) -> GroupingResult:
        """Keep the published partition a partition of the current image set."""
        known = {image.key for image in self.images}

        groups = {}
        for group_id, members in result.groups.items():
            kept = [m for m in members if member_image(m).key in known]
            if kept:
                groups[group_id] = kept

        restricted = GroupingResult(
            groups=groups,
            face_records=[r for r in result.face_records if r.image.key in known],
        )
        grouped = restricted.grouped_keys()
        restricted.ungrouped = [image for image in self.images if image.key not in grouped]
        return restricted

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def mark_deleting(self, key: str) -> None:
        self.deleting.add(key)

    def unmark_deleting(self, key: str) -> None:
        self.deleting.discard(key)

    def delete(self, key: str) -> Optional[EventImage]:
        """
        Retract an image from the image set and every group in one step.

        Groups left without members are removed; groups with at least one
        member survive.

        Returns:
            The removed image, or None when the key is unknown
        """
        image = self.get_image(key)
        if image is None:
            return None

        self.images = [img for img in self.images if img.key != key]

        groups = {}
        for group_id, members in self.result.groups.items():
            kept = [m for m in members if member_image(m).key != key]
            if kept:
                groups[group_id] = kept

        self.result = GroupingResult(
            groups=groups,
            ungrouped=[img for img in self.result.ungrouped if img.key != key],
            face_records=[r for r in self.result.face_records if r.image.key != key],
        )
        logger.info(f"Removed {key} from event {self.collection_id}")
        return image

    def restore(self, image: EventImage) -> None:
        """Put back an image whose remote delete failed (into the ungrouped bucket)."""
        if self.get_image(image.key) is not None:
            return
        self.images.append(image)
        self.result.ungrouped.append(image)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def fail(self, message: str) -> None:
        """Hard error: no usable image set."""
        self.images = []
        self.result = GroupingResult()
        self.status = GalleryStatus.error
        self.message = message

    def set_message(self, message: Optional[str]) -> None:
        self.message = message
