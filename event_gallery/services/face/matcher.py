"""
Face matching.

PerFaceMatcher searches every indexed face against the collection and hands
the matches to a FaceGroupReconciler the moment each search returns.
WholeImageMatcher searches each fresh image, resolves its group tag, then
indexes the image under that tag.

Searches run concurrently with no ordering between them. Two faces that
match each other can both resolve before either sees the other and end up
in separate groups; that imprecision is accepted to keep batch latency
bounded by the slowest call instead of the sum of all calls.
"""
import logging
from typing import List, Sequence

from event_gallery.core.exceptions import RecognitionError
from event_gallery.models.gallery import EventImage, FaceRecord
from event_gallery.services.face.reconciler import (
    FaceGroupReconciler,
    ImageGroupReconciler,
)
from event_gallery.services.face.recognition import RecognitionGateway, to_external_tag
from event_gallery.utils.concurrency import gather_bounded

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 80.0
DEFAULT_MAX_RESULTS = 5


class PerFaceMatcher:
    """Phase 2 of the per-face strategy: search by face id, resolve per face."""

    def __init__(
        self,
        gateway: RecognitionGateway,
        threshold: float = DEFAULT_THRESHOLD,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_concurrency: int = 0,
    ):
        self.gateway = gateway
        self.threshold = threshold
        self.max_results = max_results
        self.max_concurrency = max_concurrency

    async def _match_face(
        self,
        collection_id: str,
        record: FaceRecord,
        reconciler: FaceGroupReconciler,
    ) -> str:
        try:
            matches = await self.gateway.search_by_face_id(
                collection_id, record.face_id, self.max_results, self.threshold
            )
        except RecognitionError as e:
            logger.warning(f"Face search failed for faceId {record.face_id}: {e}")
            return reconciler.resolve(record.face_id)

        return reconciler.resolve(
            record.face_id, [match.matched_face_id for match in matches]
        )

    async def match_faces(
        self,
        collection_id: str,
        records: Sequence[FaceRecord],
        reconciler: FaceGroupReconciler,
    ) -> List[str]:
        """
        Resolve a group for every face record.

        Returns:
            Group ids in record order
        """
        return await gather_bounded(
            records,
            lambda record: self._match_face(collection_id, record, reconciler),
            self.max_concurrency,
        )


class WholeImageMatcher:
    """Single-phase strategy: search by image, resolve the tag, then index."""

    def __init__(
        self,
        gateway: RecognitionGateway,
        threshold: float = DEFAULT_THRESHOLD,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_concurrency: int = 0,
    ):
        self.gateway = gateway
        self.threshold = threshold
        self.max_results = max_results
        self.max_concurrency = max_concurrency

    async def _match_image(
        self,
        collection_id: str,
        image: EventImage,
        reconciler: ImageGroupReconciler,
    ) -> str:
        try:
            matches = await self.gateway.search_by_image(
                collection_id, image, self.max_results, self.threshold
            )
            tags = [match.matched_external_tag for match in matches]
        except RecognitionError as e:
            logger.warning(f"Image search failed for {image.key}: {e}")
            tags = []

        group_id = reconciler.resolve(image, tags, own_tags=[to_external_tag(image.key)])

        # Always index so later searches can resolve against this image
        try:
            faces = await self.gateway.index_faces(collection_id, image, group_id)
        except RecognitionError as e:
            logger.warning(f"Error indexing image {image.key}: {e}")
            faces = []

        reconciler.record_faces(image, [face.face_id for face in faces])
        return group_id

    async def match_images(
        self,
        collection_id: str,
        images: Sequence[EventImage],
        reconciler: ImageGroupReconciler,
    ) -> List[str]:
        return await gather_bounded(
            images,
            lambda image: self._match_image(collection_id, image, reconciler),
            self.max_concurrency,
        )
