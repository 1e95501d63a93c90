"""
Face Grouping Strategies
========================

Two interchangeable ways of turning an event's image set into person groups:

- ``per_face``: index every image (phase 1), then search every detected
  face by id and resolve its group (phase 2).
- ``whole_image``: per image, search by image, adopt a matched group tag or
  mint one, then index the image under that tag.

Each pass resolves groups from empty state. Only the face ids indexed by
the previous pass carry over, so they can be removed from the collection.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

from event_gallery.app.config import settings
from event_gallery.core.exceptions import RecognitionError
from event_gallery.models.gallery import EventImage, GroupingResult
from event_gallery.services.face.indexer import FaceIndexer
from event_gallery.services.face.matcher import PerFaceMatcher, WholeImageMatcher
from event_gallery.services.face.recognition import RecognitionGateway, RekognitionGateway
from event_gallery.services.face.reconciler import (
    FaceGroupReconciler,
    ImageGroupReconciler,
)

logger = logging.getLogger(__name__)

PER_FACE = "per_face"
WHOLE_IMAGE = "whole_image"


class GroupingStrategy(ABC):
    """
    One full grouping pass over an image set.

    The recognition service assigns fresh face ids on every index call and
    keeps the old ones, so a strategy remembers the face ids it indexed per
    image and removes them from the collection before the next pass.
    Otherwise stale copies of a face crowd its real matches out of the
    capped search results.
    """

    name: str = ""

    def __init__(self, gateway: RecognitionGateway):
        self.gateway = gateway
        # collection id -> image key -> face ids indexed by earlier passes
        self.indexed_faces: Dict[str, Dict[str, List[str]]] = {}

    @abstractmethod
    async def group(self, collection_id: str, images: Sequence[EventImage]) -> GroupingResult:
        """Group ``images`` using the collection ``collection_id``."""

    def remember_faces(self, collection_id: str, image_key: str, face_ids: Sequence[str]) -> None:
        if face_ids:
            known = self.indexed_faces.setdefault(collection_id, {})
            known.setdefault(image_key, []).extend(face_ids)

    async def retire_faces(
        self,
        collection_id: str,
        image_keys: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Remove previously indexed faces from the collection.

        Args:
            collection_id: Recognition collection
            image_keys: Images whose faces go; None retires every remembered image

        Returns:
            Number of faces removed (0 when the delete call failed; the ids
            are kept and retried on the next call)
        """
        known = self.indexed_faces.get(collection_id, {})
        keys = list(known) if image_keys is None else [k for k in image_keys if k in known]
        face_ids = [face_id for key in keys for face_id in known[key]]
        if not face_ids:
            return 0

        try:
            await self.gateway.delete_faces(collection_id, face_ids)
        except RecognitionError as e:
            logger.warning(f"Failed to remove {len(face_ids)} stale faces from {collection_id}: {e}")
            return 0

        for key in keys:
            known.pop(key, None)
        logger.info(f"Removed {len(face_ids)} stale faces from {collection_id}")
        return len(face_ids)


class PerFaceGroupingStrategy(GroupingStrategy):
    """Index all faces, then match each face by id."""

    name = PER_FACE

    def __init__(
        self,
        gateway: RecognitionGateway,
        threshold: float = 80.0,
        max_results: int = 5,
        max_concurrency: int = 0,
        consolidate: bool = False,
    ):
        super().__init__(gateway)
        self.indexer = FaceIndexer(gateway, max_concurrency=max_concurrency)
        self.matcher = PerFaceMatcher(
            gateway,
            threshold=threshold,
            max_results=max_results,
            max_concurrency=max_concurrency,
        )
        self.consolidate = consolidate

    async def group(self, collection_id: str, images: Sequence[EventImage]) -> GroupingResult:
        await self.gateway.ensure_collection(collection_id)
        await self.retire_faces(collection_id)

        # Phase 1: index all images
        records = await self.indexer.index_images(collection_id, images)
        for record in records:
            self.remember_faces(collection_id, record.image.key, [record.face_id])

        # Phase 2: search & resolve each face
        reconciler = FaceGroupReconciler()
        await self.matcher.match_faces(collection_id, records, reconciler)

        if self.consolidate:
            reconciler.consolidate_singletons(records)

        result = reconciler.build_result(images, records)
        logger.info(
            f"Per-face grouping for {collection_id}: {len(images)} images, "
            f"{len(records)} faces, {len(result.groups)} groups, "
            f"{len(result.ungrouped)} ungrouped"
        )
        return result


class WholeImageGroupingStrategy(GroupingStrategy):
    """Search each image, resolve its tag, index it under that tag."""

    name = WHOLE_IMAGE

    def __init__(
        self,
        gateway: RecognitionGateway,
        threshold: float = 80.0,
        max_results: int = 5,
        max_concurrency: int = 0,
    ):
        super().__init__(gateway)
        self.matcher = WholeImageMatcher(
            gateway,
            threshold=threshold,
            max_results=max_results,
            max_concurrency=max_concurrency,
        )

    async def group(self, collection_id: str, images: Sequence[EventImage]) -> GroupingResult:
        await self.gateway.ensure_collection(collection_id)
        await self.retire_faces(collection_id)

        reconciler = ImageGroupReconciler()
        await self.matcher.match_images(collection_id, images, reconciler)
        for image_key, face_ids in reconciler.image_faces.items():
            self.remember_faces(collection_id, image_key, face_ids)

        result = reconciler.build_result(images)
        logger.info(
            f"Whole-image grouping for {collection_id}: {len(images)} images, "
            f"{len(result.groups)} groups, {len(result.ungrouped)} ungrouped"
        )
        return result


def create_grouping_strategy(
    strategy: Optional[str] = None,
    gateway: Optional[RecognitionGateway] = None,
    **kwargs
) -> GroupingStrategy:
    """
    Factory function to create a grouping strategy from settings.

    Args:
        strategy: 'per_face' or 'whole_image' (default: FACE_GROUPING_STRATEGY)
        gateway: Recognition gateway (default: Rekognition)
        **kwargs: Overrides for threshold, max_results, max_concurrency, consolidate

    Examples:
        strategy = create_grouping_strategy()
        strategy = create_grouping_strategy('whole_image', gateway=fake_gateway)
    """
    strategy = strategy or settings.FACE_GROUPING_STRATEGY
    gateway = gateway or RekognitionGateway()

    options = {
        'threshold': settings.FACE_MATCH_THRESHOLD,
        'max_results': settings.FACE_SEARCH_MAX_RESULTS,
        'max_concurrency': settings.RECOGNITION_MAX_CONCURRENCY,
    }
    options.update(kwargs)

    if strategy == PER_FACE:
        options.setdefault('consolidate', settings.FACE_CONSOLIDATION_PASS)
        return PerFaceGroupingStrategy(gateway, **options)
    if strategy == WHOLE_IMAGE:
        options.pop('consolidate', None)
        return WholeImageGroupingStrategy(gateway, **options)

    raise ValueError(f"Unknown grouping strategy: {strategy}")
