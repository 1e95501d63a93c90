"""S3 storage service for event image listing, uploads and deletes."""
import io
import logging
import os
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from event_gallery.app.config import settings
from event_gallery.core.exceptions import StorageError
from event_gallery.models.gallery import EventImage

logger = logging.getLogger(__name__)


class S3Service:
    """Service for S3 operations with comprehensive error handling."""

    def __init__(
        self,
        client: Optional[Any] = None,
        bucket_name: Optional[str] = None,
        part_size: Optional[int] = None,
    ):
        """Initialize S3 client with configuration."""
        if client is None:
            try:
                client = boto3.client(
                    's3',
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    region_name=settings.S3_REGION,
                    config=Config(
                        signature_version='s3v4',
                        s3={'addressing_style': 'virtual'}
                    )
                )
            except (BotoCoreError, ValueError) as e:
                logger.error(f"Failed to initialize S3 client: {e}")
                raise StorageError(f"S3 initialization failed: {str(e)}")

        self.s3_client = client
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self.part_size = part_size or settings.UPLOAD_PART_SIZE
        logger.info(f"S3 Service initialized for bucket: {self.bucket_name}")

    def build_image_url(self, s3_key: str) -> str:
        """Public retrieval URL for a stored image."""
        return f"https://{self.bucket_name}.s3.amazonaws.com/{s3_key}"

    def generate_image_key(
        self,
        event_id: str,
        filename: str,
        timestamp_ms: Optional[int] = None
    ) -> str:
        """
        Generate a unique S3 key for an uploaded event image.

        Files of one batch are keyed in the same millisecond, so a random
        suffix keeps equal filenames apart.

        Args:
            event_id: Event identifier
            filename: Original filename (directory parts are dropped)
            timestamp_ms: Upload time in epoch milliseconds (default: now)

        Returns:
            S3 key path: events/shared/{event_id}/images/{timestamp}-{hex8}-{filename}
        """
        if timestamp_ms is None:
            timestamp_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
        name = os.path.basename(filename.replace('\\', '/')) or 'image.jpg'
        return f"events/shared/{event_id}/images/{timestamp_ms}-{secrets.token_hex(4)}-{name}"

    def list_objects_by_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List every object with the given prefix.

        Args:
            prefix: S3 key prefix

        Returns:
            List of object dicts with key, size, last_modified

        Raises:
            StorageError: If listing fails
        """
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            objects = []
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get('Contents', []):
                    objects.append({
                        'key': obj['Key'],
                        'size': obj.get('Size', 0),
                        'last_modified': obj.get('LastModified'),
                    })

            logger.debug(f"Listed {len(objects)} objects with prefix: {prefix}")
            return objects

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing objects under {prefix}: {e}")
            raise StorageError(f"Failed to list objects: {str(e)}")

    def list_images(
        self,
        prefix: str,
        extensions: Optional[List[str]] = None
    ) -> List[EventImage]:
        """
        List images under a prefix, keeping only supported extensions.

        Raises:
            StorageError: If listing fails
        """
        extensions = extensions or settings.image_extensions()
        suffixes = tuple(f".{ext.lower()}" for ext in extensions)

        return [
            EventImage(key=obj['key'], url=self.build_image_url(obj['key']))
            for obj in self.list_objects_by_prefix(prefix)
            if obj['key'] and obj['key'].lower().endswith(suffixes)
        ]

    def upload_file(
        self,
        file_data: bytes,
        s3_key: str,
        content_type: str = 'application/octet-stream',
        metadata: Optional[Dict[str, str]] = None,
        callback: Optional[Callable[[int], None]] = None
    ) -> EventImage:
        """
        Upload file bytes to S3, in parts when larger than the part size.

        Args:
            file_data: File content as bytes
            s3_key: S3 object key
            content_type: MIME type
            metadata: Optional metadata dict
            callback: Called with the byte count of every transferred chunk

        Returns:
            The stored image

        Raises:
            StorageError: If upload fails
        """
        extra_args: Dict[str, Any] = {'ContentType': content_type}
        if metadata:
            extra_args['Metadata'] = metadata

        transfer_config = TransferConfig(
            multipart_threshold=self.part_size,
            multipart_chunksize=self.part_size,
        )

        try:
            self.s3_client.upload_fileobj(
                io.BytesIO(file_data),
                self.bucket_name,
                s3_key,
                ExtraArgs=extra_args,
                Callback=callback,
                Config=transfer_config,
            )
            logger.info(f"Uploaded {len(file_data)} bytes to: {s3_key}")
            return EventImage(key=s3_key, url=self.build_image_url(s3_key))

        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            logger.error(f"Error uploading file {s3_key}: {e}")
            raise StorageError(f"Failed to upload file: {str(e)}")

    def delete_object(self, s3_key: str) -> None:
        """
        Delete object from S3.

        Raises:
            StorageError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=s3_key
            )
            logger.info(f"Deleted S3 object: {s3_key}")

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting object {s3_key}: {e}")
            raise StorageError(f"Failed to delete object: {str(e)}")
