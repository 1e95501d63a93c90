"""In-memory stand-ins for the recognition service and the object store."""
import asyncio
from typing import Dict, List, Optional, Sequence

from event_gallery.core.exceptions import RecognitionError, StorageError
from event_gallery.models.gallery import (
    BoundingBox,
    EventImage,
    FaceMatch,
    ImageMatch,
    IndexedFace,
)
from event_gallery.services.face.recognition import RecognitionGateway

EVENT_ID = "event-123"
PREFIX = f"events/shared/{EVENT_ID}/images"


def make_image(name: str) -> EventImage:
    key = f"{PREFIX}/{name}.jpg"
    return EventImage(key=key, url=f"https://test-bucket.s3.amazonaws.com/{key}")


class FakeRecognitionGateway(RecognitionGateway):
    """
    Recognition service over a fixed "who is in which image" table.

    Faces of the same person score 95, different people score 10. Like the
    real service, every index call issues fresh face ids and earlier faces
    stay in the collection until deleted. First-call ids are
    ``face:<image key>:<n>`` so tests can script search results.
    """

    SAME_PERSON = 95.0
    OTHER_PERSON = 10.0

    def __init__(
        self,
        people: Dict[str, List[str]],
        delays: Optional[Dict[str, float]] = None,
    ):
        self.people = people
        self.delays = delays or {}
        self.collections = set()
        self.faces: Dict[str, Dict] = {}
        self.fail_index = set()
        self.fail_face_search = set()
        self.fail_image_search = set()
        self.fail_delete_faces = False
        self.index_count: Dict[str, int] = {}
        self.scripted_face_matches: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @staticmethod
    def face_id(image: EventImage, n: int = 0, generation: int = 1) -> str:
        """Id of the ``n``-th face of ``image`` from its ``generation``-th index call."""
        if generation == 1:
            return f"face:{image.key}:{n}"
        return f"face:{image.key}:{n}:{generation}"

    def _similarity(self, person_a: str, person_b: str) -> float:
        return self.SAME_PERSON if person_a == person_b else self.OTHER_PERSON

    async def _latency(self, key: str) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(key, 0))
        finally:
            self.in_flight -= 1

    async def ensure_collection(self, collection_id: str) -> None:
        self.calls.append(("ensure_collection", collection_id))
        self.collections.add(collection_id)

    async def index_faces(self, collection_id, image, external_tag):
        self.calls.append(("index_faces", image.key, external_tag))
        await self._latency(image.key)
        if image.key in self.fail_index:
            raise RecognitionError("throttled", operation="index_faces")

        # Every call issues fresh ids; faces from earlier calls stay indexed
        generation = self.index_count.get(image.key, 0) + 1
        self.index_count[image.key] = generation

        indexed = []
        for n, person in enumerate(self.people.get(image.key, [])):
            face_id = self.face_id(image, n, generation)
            self.faces[face_id] = {
                "person": person,
                "tag": external_tag,
                "image": image.key,
            }
            indexed.append(IndexedFace(
                face_id=face_id,
                bounding_box=BoundingBox(width=0.2, height=0.3, left=0.1 * n, top=0.1),
            ))
        return indexed

    async def delete_faces(self, collection_id, face_ids):
        self.calls.append(("delete_faces", tuple(face_ids)))
        if self.fail_delete_faces:
            raise RecognitionError("service unavailable", operation="delete_faces")
        for face_id in face_ids:
            self.faces.pop(face_id, None)

    async def search_by_face_id(self, collection_id, face_id, max_results, threshold):
        image_key = self.faces[face_id]["image"]
        self.calls.append(("search_by_face_id", face_id))
        await self._latency(image_key)
        if image_key in self.fail_face_search:
            raise RecognitionError("service unavailable", operation="search_faces")

        if face_id in self.scripted_face_matches:
            return [
                FaceMatch(matched_face_id=fid, similarity=self.SAME_PERSON - i)
                for i, fid in enumerate(self.scripted_face_matches[face_id])
            ][:max_results]

        person = self.faces[face_id]["person"]
        matches = [
            FaceMatch(matched_face_id=other_id, similarity=self._similarity(person, face["person"]))
            for other_id, face in self.faces.items()
            if other_id != face_id
        ]
        matches = [m for m in matches if m.similarity >= threshold]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:max_results]

    async def search_by_image(self, collection_id, image, max_results, threshold):
        self.calls.append(("search_by_image", image.key))
        await self._latency(image.key)
        if image.key in self.fail_image_search:
            raise RecognitionError("service unavailable", operation="search_faces_by_image")

        matches = []
        for person in self.people.get(image.key, []):
            for face in self.faces.values():
                similarity = self._similarity(person, face["person"])
                if similarity >= threshold:
                    matches.append(ImageMatch(matched_external_tag=face["tag"], similarity=similarity))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:max_results]


class FakeStorage:
    """Object store with the S3Service call surface, backed by a dict."""

    def __init__(self, images: Sequence[EventImage] = ()):
        self.objects: Dict[str, Dict] = {image.key: {"url": image.url} for image in images}
        self.fail_list_prefixes = set()
        self.fail_upload_names = set()
        self.fail_delete_keys = set()
        self.deleted: List[str] = []
        self.uploads: List[Dict] = []
        self._counter = 0

    def build_image_url(self, key: str) -> str:
        return f"https://test-bucket.s3.amazonaws.com/{key}"

    def generate_image_key(self, event_id: str, filename: str) -> str:
        self._counter += 1
        return f"events/shared/{event_id}/images/{1700000000000 + self._counter}-{filename}"

    def list_images(self, prefix: str) -> List[EventImage]:
        if prefix in self.fail_list_prefixes:
            raise StorageError(f"Failed to list objects: AccessDenied ({prefix})")
        return [
            EventImage(key=key, url=obj["url"])
            for key, obj in self.objects.items()
            if key.startswith(prefix)
        ]

    def upload_file(self, file_data, s3_key, content_type="application/octet-stream",
                    metadata=None, callback=None):
        if any(s3_key.endswith(name) for name in self.fail_upload_names):
            raise StorageError(f"Failed to upload file: {s3_key}")
        if callback:
            half = len(file_data) // 2
            callback(half)
            callback(len(file_data) - half)
        url = self.build_image_url(s3_key)
        self.objects[s3_key] = {"url": url, "content_type": content_type, "metadata": metadata}
        self.uploads.append({"key": s3_key, "metadata": metadata, "content_type": content_type})
        return EventImage(key=s3_key, url=url)

    def delete_object(self, s3_key: str) -> None:
        if s3_key in self.fail_delete_keys:
            raise StorageError(f"Failed to delete object: {s3_key}")
        self.objects.pop(s3_key, None)
        self.deleted.append(s3_key)


