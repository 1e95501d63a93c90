"""
Face recognition gateway.

Capability interface over the external recognition service plus the AWS
Rekognition implementation used in production. One collection per event,
collection id == event id.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from event_gallery.app.config import settings
from event_gallery.core.exceptions import RecognitionError
from event_gallery.models.gallery import (
    BoundingBox,
    EventImage,
    FaceMatch,
    ImageMatch,
    IndexedFace,
)
from event_gallery.utils.concurrency import run_blocking

logger = logging.getLogger(__name__)

# Rekognition ExternalImageId: [a-zA-Z0-9_.\-:]+, at most 255 characters
_EXTERNAL_TAG_INVALID = re.compile(r"[^a-zA-Z0-9_.\-:]")
_EXTERNAL_TAG_MAX_LENGTH = 255

# DeleteFaces accepts at most 4096 ids per call
_DELETE_FACES_BATCH = 4096


def to_external_tag(value: str) -> str:
    """Map an arbitrary label onto the character set the service accepts."""
    tag = _EXTERNAL_TAG_INVALID.sub("_", value.replace("/", ":"))
    return tag[-_EXTERNAL_TAG_MAX_LENGTH:] or "untagged"


class RecognitionGateway(ABC):
    """Capability interface for the face-recognition service."""

    @abstractmethod
    async def ensure_collection(self, collection_id: str) -> None:
        """Create the collection if absent. Never raises."""

    @abstractmethod
    async def index_faces(
        self,
        collection_id: str,
        image: EventImage,
        external_tag: str,
    ) -> List[IndexedFace]:
        """Detect and register the faces of one image. Raises RecognitionError."""

    @abstractmethod
    async def search_by_face_id(
        self,
        collection_id: str,
        face_id: str,
        max_results: int,
        threshold: float,
    ) -> List[FaceMatch]:
        """Faces similar to an indexed face, highest similarity first. Raises RecognitionError."""

    @abstractmethod
    async def search_by_image(
        self,
        collection_id: str,
        image: EventImage,
        max_results: int,
        threshold: float,
    ) -> List[ImageMatch]:
        """Indexed faces similar to any face in a fresh image. Raises RecognitionError."""

    @abstractmethod
    async def delete_faces(self, collection_id: str, face_ids: Sequence[str]) -> None:
        """Remove indexed faces from the collection. Raises RecognitionError."""


class RekognitionGateway(RecognitionGateway):
    """AWS Rekognition collections reading images straight from the event bucket."""

    def __init__(
        self,
        client: Optional[Any] = None,
        bucket_name: Optional[str] = None,
    ):
        if client is None:
            client = boto3.client(
                "rekognition",
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.REKOGNITION_REGION or settings.S3_REGION,
                config=Config(retries={"max_attempts": 5, "mode": "adaptive"}),
            )
        self.client = client
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        logger.info(f"Rekognition gateway initialized for bucket: {self.bucket_name}")

    def _image_ref(self, image: EventImage) -> Dict[str, Any]:
        return {"S3Object": {"Bucket": self.bucket_name, "Name": image.key}}

    async def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        try:
            return await run_blocking(getattr(self.client, operation), **params)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            raise RecognitionError(
                f"{operation} failed ({error_code}): {e}", operation=operation
            ) from e
        except BotoCoreError as e:
            raise RecognitionError(f"{operation} failed: {e}", operation=operation) from e

    async def ensure_collection(self, collection_id: str) -> None:
        try:
            await run_blocking(self.client.describe_collection, CollectionId=collection_id)
            return
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code != "ResourceNotFoundException":
                logger.error(f"Error describing collection {collection_id}: {e}")
                return
        except BotoCoreError as e:
            logger.error(f"Error describing collection {collection_id}: {e}")
            return

        try:
            await run_blocking(self.client.create_collection, CollectionId=collection_id)
            logger.info(f"Created recognition collection: {collection_id}")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ResourceAlreadyExistsException":
                return
            logger.error(f"Error ensuring collection {collection_id}: {e}")
        except BotoCoreError as e:
            logger.error(f"Error ensuring collection {collection_id}: {e}")

    async def index_faces(
        self,
        collection_id: str,
        image: EventImage,
        external_tag: str,
    ) -> List[IndexedFace]:
        response = await self._call(
            "index_faces",
            CollectionId=collection_id,
            Image=self._image_ref(image),
            ExternalImageId=to_external_tag(external_tag),
            DetectionAttributes=[],
        )

        faces = []
        for record in response.get("FaceRecords") or []:
            face = record.get("Face") or {}
            face_id = face.get("FaceId")
            if face_id:
                faces.append(IndexedFace(
                    face_id=face_id,
                    bounding_box=BoundingBox.from_rekognition(face.get("BoundingBox")),
                ))

        logger.debug(f"Indexed {len(faces)} faces in {image.key}")
        return faces

    async def search_by_face_id(
        self,
        collection_id: str,
        face_id: str,
        max_results: int,
        threshold: float,
    ) -> List[FaceMatch]:
        response = await self._call(
            "search_faces",
            CollectionId=collection_id,
            FaceId=face_id,
            MaxFaces=max_results,
            FaceMatchThreshold=threshold,
        )

        matches = []
        for match in response.get("FaceMatches") or []:
            matched_id = (match.get("Face") or {}).get("FaceId")
            if matched_id:
                matches.append(FaceMatch(
                    matched_face_id=matched_id,
                    similarity=float(match.get("Similarity", 0.0)),
                ))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:max_results]

    async def search_by_image(
        self,
        collection_id: str,
        image: EventImage,
        max_results: int,
        threshold: float,
    ) -> List[ImageMatch]:
        try:
            response = await self._call(
                "search_faces_by_image",
                CollectionId=collection_id,
                Image=self._image_ref(image),
                MaxFaces=max_results,
                FaceMatchThreshold=threshold,
            )
        except RecognitionError as e:
            # Raised by the service when the image contains no face
            cause = e.__cause__
            if isinstance(cause, ClientError) and \
                    cause.response.get("Error", {}).get("Code") == "InvalidParameterException":
                logger.debug(f"No searchable face in {image.key}")
                return []
            raise

        matches = []
        for match in response.get("FaceMatches") or []:
            tag = (match.get("Face") or {}).get("ExternalImageId")
            if tag:
                matches.append(ImageMatch(
                    matched_external_tag=tag,
                    similarity=float(match.get("Similarity", 0.0)),
                ))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:max_results]

    async def delete_faces(self, collection_id: str, face_ids: Sequence[str]) -> None:
        face_ids = list(face_ids)
        for start in range(0, len(face_ids), _DELETE_FACES_BATCH):
            batch = face_ids[start:start + _DELETE_FACES_BATCH]
            await self._call("delete_faces", CollectionId=collection_id, FaceIds=batch)
        logger.debug(f"Deleted {len(face_ids)} faces from {collection_id}")
