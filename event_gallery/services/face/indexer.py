"""Phase 1 of per-face grouping: detect and index the faces of every image."""
import logging
from typing import List, Sequence

from event_gallery.core.exceptions import RecognitionError
from event_gallery.models.gallery import EventImage, FaceRecord
from event_gallery.services.face.recognition import RecognitionGateway
from event_gallery.utils.concurrency import gather_bounded

logger = logging.getLogger(__name__)


class FaceIndexer:
    """
    Submit every image to the recognition service for face indexing.

    Best effort: an image whose index call fails contributes no faces and
    the rest of the batch carries on.
    """

    def __init__(self, gateway: RecognitionGateway, max_concurrency: int = 0):
        self.gateway = gateway
        self.max_concurrency = max_concurrency

    async def _index_image(self, collection_id: str, image: EventImage) -> List[FaceRecord]:
        try:
            faces = await self.gateway.index_faces(collection_id, image, image.key)
        except RecognitionError as e:
            logger.warning(f"Error indexing image {image.key}: {e}")
            return []

        return [
            FaceRecord(face_id=face.face_id, image=image, bounding_box=face.bounding_box)
            for face in faces
        ]

    async def index_images(
        self,
        collection_id: str,
        images: Sequence[EventImage],
    ) -> List[FaceRecord]:
        """
        Index all images concurrently.

        Args:
            collection_id: Recognition collection (the event id)
            images: Event images to index

        Returns:
            Flat list of face records; several may share one image
        """
        per_image = await gather_bounded(
            images,
            lambda image: self._index_image(collection_id, image),
            self.max_concurrency,
        )
        records = [record for records in per_image for record in records]
        logger.info(f"Indexed {len(records)} faces across {len(images)} images")
        return records
