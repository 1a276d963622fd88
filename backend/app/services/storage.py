"""S3-compatible object storage for course knowledge documents."""

import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings
from app.errors import InternalError

KNOWLEDGE_BUCKET_PREFIX = "course-knowledge-bases"

_KNOWLEDGE_PATH = re.compile(rf"{KNOWLEDGE_BUCKET_PREFIX}/(.+)$")


class StorageError(InternalError):
    """Raised when an object storage operation fails."""


def knowledge_object_key(file_url: str) -> str | None:
    """
    Map a knowledge document URL back to its storage key.

    Returns None for URLs that do not point into the knowledge prefix, which
    callers fetch over plain HTTP instead.
    """
    match = _KNOWLEDGE_PATH.search(file_url.split("?", 1)[0])
    if match is None:
        return None
    return f"{KNOWLEDGE_BUCKET_PREFIX}/{match.group(1)}"


class StorageService:
    """Service for interacting with S3 for knowledge document storage."""

    def __init__(self, settings: Settings | None = None):
        """Initialize S3 client with credentials from settings."""
        settings = settings or get_settings()
        client_kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
            "region_name": settings.aws_s3_region,
        }
        # Support MinIO / LocalStack by pointing to a custom endpoint
        if settings.aws_s3_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self.bucket = settings.aws_s3_bucket

        if settings.storage_public_base_url:
            self.public_base_url = settings.storage_public_base_url.rstrip("/")
        elif settings.aws_s3_endpoint_url:
            self.public_base_url = f"{settings.aws_s3_endpoint_url.rstrip('/')}/{self.bucket}"
        else:
            self.public_base_url = f"https://{self.bucket}.s3.{settings.aws_s3_region}.amazonaws.com"

    def public_url(self, key: str) -> str:
        """Public URL under which an object is served."""
        return f"{self.public_base_url}/{key}"

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        """
        Upload an object (server-side upload).

        Args:
            key: Object key (path)
            data: Raw bytes of the file
            content_type: MIME type stored with the object

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

    async def download(self, key: str) -> bytes:
        """
        Download an object.

        Args:
            key: Object key (path)

        Returns:
            Raw bytes of the object

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {key}: {e}") from e

    async def delete(self, key: str) -> None:
        """
        Delete an object.

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
