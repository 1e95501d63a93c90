"""
Group reconciliation.

Folds recognition match results into group ids. Each reconciler is the
single owner of its counter and mappings for one grouping pass; all writes
happen on the event loop thread, one dict assignment at a time, so
concurrently completing searches never tear an entry. Reads see whatever
assignments have landed so far.
"""
import logging
import secrets
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from event_gallery.models.gallery import (
    EventImage,
    FaceRecord,
    GroupingResult,
    GroupPartition,
)

logger = logging.getLogger(__name__)


class FaceGroupReconciler:
    """
    Face id -> group id mapping for the per-face strategy.

    Resolution rule for one face, evaluated when its own search completes:
    adopt the group of the first matched face (service order, highest
    similarity first) that already has one; otherwise mint a new group.
    A failed search resolves like "no matches".
    """

    def __init__(self):
        self._counter = 0
        self.face_to_group: Dict[str, str] = {}
        self._candidates: Dict[str, Tuple[str, ...]] = {}

    def mint_group_id(self) -> str:
        self._counter += 1
        return f"group_{self._counter}"

    def group_of(self, face_id: str) -> Optional[str]:
        return self.face_to_group.get(face_id)

    def resolve(self, face_id: str, matched_face_ids: Iterable[str] = ()) -> str:
        """
        Assign a group to ``face_id`` from the faces its search matched.

        Args:
            face_id: Face being resolved
            matched_face_ids: Matches in service order

        Returns:
            Group id assigned to the face
        """
        candidates = tuple(fid for fid in matched_face_ids if fid != face_id)
        self._candidates[face_id] = candidates

        group_id = None
        for matched_id in candidates:
            group_id = self.face_to_group.get(matched_id)
            if group_id is not None:
                break

        if group_id is None:
            group_id = self.mint_group_id()

        self.face_to_group[face_id] = group_id
        return group_id

    def consolidate_singletons(self, records: Sequence[FaceRecord]) -> int:
        """
        One extra round over size-1 groups using the recorded match lists.

        A face alone in its group moves to the first matched face whose
        group differs from its own. No recognition calls are made.

        Returns:
            Number of faces re-pointed
        """
        sizes: Dict[str, int] = {}
        for group_id in self.face_to_group.values():
            sizes[group_id] = sizes.get(group_id, 0) + 1

        moved = 0
        for record in records:
            current = self.face_to_group.get(record.face_id)
            if current is None or sizes.get(current, 0) != 1:
                continue

            for matched_id in self._candidates.get(record.face_id, ()):
                target = self.face_to_group.get(matched_id)
                if target is not None and target != current:
                    self.face_to_group[record.face_id] = target
                    sizes[current] -= 1
                    sizes[target] += 1
                    moved += 1
                    break

        if moved:
            logger.info(f"Consolidation pass merged {moved} singleton faces")
        return moved

    def build_partition(self, records: Sequence[FaceRecord]) -> GroupPartition:
        """Bucket every resolved face by group, preserving first-seen order."""
        partition: GroupPartition = OrderedDict()
        for record in records:
            group_id = self.face_to_group.get(record.face_id)
            if group_id is None:
                # Unresolved faces still land somewhere
                group_id = self.resolve(record.face_id)
            partition.setdefault(group_id, []).append(record)
        return dict(partition)

    def build_result(
        self,
        images: Sequence[EventImage],
        records: Sequence[FaceRecord],
    ) -> GroupingResult:
        groups = self.build_partition(records)
        result = GroupingResult(groups=groups, face_records=list(records))
        grouped = result.grouped_keys()
        result.ungrouped = [image for image in images if image.key not in grouped]
        return result


class ImageGroupReconciler:
    """
    Image key -> group tag mapping for the whole-image strategy.

    The tag stored with an indexed image is its group id, so a later search
    that hits any face of the image recovers the group directly.
    """

    def __init__(self):
        self.image_to_group: Dict[str, str] = {}
        self.image_faces: Dict[str, List[str]] = {}

    @staticmethod
    def mint_group_id() -> str:
        return f"group_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    def resolve(self, image: EventImage, matched_tags: Iterable[str] = (), own_tags: Iterable[str] = ()) -> str:
        """Adopt the first matched tag that isn't the image's own, else mint."""
        own = {image.key, *own_tags}
        group_id = next((tag for tag in matched_tags if tag not in own), None)
        if group_id is None:
            group_id = self.mint_group_id()
        self.image_to_group[image.key] = group_id
        return group_id

    def record_faces(self, image: EventImage, face_ids: Sequence[str]) -> None:
        """Face ids the image was indexed under in this pass."""
        self.image_faces[image.key] = list(face_ids)

    def build_result(self, images: Sequence[EventImage]) -> GroupingResult:
        """
        Group the input image set by resolved tag.

        Images with at least one indexed face join their group, even when
        they are its only member. Images without an indexed face go to the
        ungrouped bucket.
        """
        result = GroupingResult()
        seen = set()
        for image in images:
            if image.key in seen:
                continue
            seen.add(image.key)

            if not self.image_faces.get(image.key):
                result.ungrouped.append(image)
                continue

            group_id = self.image_to_group.get(image.key)
            if group_id is None:
                group_id = self.resolve(image)
            result.groups.setdefault(group_id, []).append(image)
        return result
