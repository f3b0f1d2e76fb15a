"""Object storage for avatars and publication files.

Async wrapper around aioboto3 for an S3-compatible store (MinIO in
development), plus the key-naming rules for uploaded objects.
"""

import re
import secrets
import time
from typing import Dict, List, Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError
import structlog

from pubportal.config import Settings

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.\-]+")


# ============================================================================
# Key naming
# ============================================================================


def sanitize_filename(name: str) -> str:
    """Replace every run of characters outside [A-Za-z0-9_.-] with an underscore."""
    return _UNSAFE_CHARS.sub("_", name or "file")


def file_extension(filename: Optional[str], default: str = "bin") -> str:
    """Lower-case extension of a filename, or ``default`` when there is none."""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext and _UNSAFE_CHARS.search(ext) is None:
            return ext
    return default


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def random_suffix() -> str:
    return secrets.token_hex(4)


def avatar_key(prefix: str, filename: Optional[str], with_random: bool = True) -> str:
    """
    Key for an uploaded profile image.

    ``{prefix}/{ts}-{rand}.{ext}``, or ``{prefix}/{ts}.{ext}`` without the
    random part.
    """
    stem = f"{timestamp_ms()}-{random_suffix()}" if with_random else str(timestamp_ms())
    return _join_key(prefix, f"{stem}.{file_extension(filename, 'png')}")


def document_key(prefix: str, filename: Optional[str]) -> str:
    """Key for an uploaded document: ``{prefix}/{ts}-{sanitized name}``."""
    return _join_key(prefix, f"{timestamp_ms()}-{sanitize_filename(filename or 'file.pdf')}")


def _join_key(prefix, name: str) -> str:
    prefix = str(prefix or "").strip("/")
    return f"{prefix}/{name}" if prefix else name


# ============================================================================
# Client
# ============================================================================


class StorageService:
    """Async S3-compatible storage client using aioboto3."""

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        public_base_url: Optional[str] = None,
        presign_expiry: int = 600,
        max_pool_connections: int = 20,
    ):
        """
        Initialize storage client.

        Args:
            endpoint_url: Endpoint (e.g., http://minio:9000)
            access_key: Access key ID
            secret_key: Secret access key
            region: Region name
            public_base_url: Base for public object URLs (defaults to the endpoint)
            presign_expiry: Default presigned URL lifetime in seconds
            max_pool_connections: Maximum connection pool size
        """
        self.endpoint_url = endpoint_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.public_base_url = (public_base_url or endpoint_url).rstrip("/")
        self.presign_expiry = presign_expiry

        self.config = Config(
            max_pool_connections=max_pool_connections,
            retries={
                'max_attempts': 3,
                'mode': 'adaptive'
            }
        )

        self.session = aioboto3.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageService":
        return cls(
            endpoint_url=settings.storage_endpoint_url,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            region=settings.storage_region,
            public_base_url=settings.storage_public_url,
            presign_expiry=settings.storage_presign_expiry,
        )

    def get_client(self):
        """
        Get an async S3 client context manager.

        Usage:
            async with storage.get_client() as s3:
                await s3.put_object(...)
        """
        return self.session.client(
            's3',
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region,
            config=self.config
        )

    def public_url(self, bucket: str, key: str) -> str:
        """Public URL of an object (the bucket must allow anonymous reads)."""
        return f"{self.public_base_url}/{bucket}/{key}"

    async def ensure_bucket(self, bucket: str) -> bool:
        """
        Create a bucket if it doesn't exist.

        Returns:
            True if the bucket was created
        """
        try:
            async with self.get_client() as s3:
                try:
                    await s3.head_bucket(Bucket=bucket)
                    return False
                except ClientError:
                    pass
                await s3.create_bucket(Bucket=bucket)
                logger.info("bucket_created", bucket=bucket)
                return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code in ('BucketAlreadyOwnedByYou', 'BucketAlreadyExists'):
                logger.debug("bucket_already_exists", bucket=bucket)
                return False
            logger.error("bucket_creation_failed", bucket=bucket, error=str(e))
            raise

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Store an object, overwriting any object under the same key.

        Returns:
            The object key
        """
        try:
            async with self.get_client() as s3:
                await s3.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type or "application/octet-stream",
                    Metadata=metadata or {}
                )
                logger.info(
                    "object_uploaded",
                    bucket=bucket,
                    key=key,
                    size_bytes=len(data)
                )
                return key
        except ClientError as e:
            logger.error(
                "object_upload_failed",
                bucket=bucket,
                key=key,
                error=str(e)
            )
            raise

    async def delete_objects(self, bucket: str, keys: List[str]) -> int:
        """
        Delete objects by key; missing keys are not an error.

        Returns:
            Number of keys submitted for deletion
        """
        keys = [key for key in dict.fromkeys(keys) if key]
        if not keys:
            return 0

        try:
            async with self.get_client() as s3:
                await s3.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True}
                )
                logger.info("objects_deleted", bucket=bucket, count=len(keys))
                return len(keys)
        except ClientError as e:
            logger.error(
                "object_deletion_failed",
                bucket=bucket,
                keys=keys,
                error=str(e)
            )
            raise

    async def list_objects(self, bucket: str, prefix: str = "", max_keys: int = 1000) -> List[str]:
        """
        List object keys under a prefix.

        Returns:
            Object keys
        """
        try:
            async with self.get_client() as s3:
                response = await s3.list_objects_v2(
                    Bucket=bucket,
                    Prefix=prefix,
                    MaxKeys=max_keys
                )
                keys = [obj['Key'] for obj in response.get('Contents', [])]
                logger.debug(
                    "objects_listed",
                    bucket=bucket,
                    prefix=prefix,
                    count=len(keys)
                )
                return keys
        except ClientError as e:
            logger.error(
                "object_listing_failed",
                bucket=bucket,
                prefix=prefix,
                error=str(e)
            )
            raise

    async def presigned_url(self, bucket: str, key: str, expires_in: Optional[int] = None) -> str:
        """Time-limited GET URL for a private object."""
        async with self.get_client() as s3:
            return await s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': bucket, 'Key': key},
                ExpiresIn=expires_in or self.presign_expiry
            )
