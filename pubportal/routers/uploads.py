"""
Multipart upload helpers shared by the routers.
"""

from typing import Optional, Tuple

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile, status

from pubportal.config import get_settings
from pubportal.services.storage_service import StorageService, avatar_key

logger = structlog.get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


async def read_upload(file: Optional[UploadFile]) -> Tuple[bytes, str]:
    """
    Body and content type of an uploaded file.

    Raises:
        HTTPException: 400 when the file is missing, empty or too large
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file required")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file is empty")

    max_size = get_settings().security_max_upload_size
    if len(data) > max_size:
        logger.warning("upload_too_large", filename=file.filename, size_bytes=len(data), max_bytes=max_size)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file too large")

    return data, file.content_type or "application/octet-stream"


def is_pdf(file: UploadFile) -> bool:
    return (file.content_type or "").lower() == PDF_CONTENT_TYPE or (file.filename or "").lower().endswith(".pdf")


async def store_avatar(
    storage: StorageService,
    file: Optional[UploadFile],
    prefix: str,
    with_random: bool = True,
    ensure_bucket: bool = False
) -> Tuple[str, str]:
    """
    Upload a profile image to the avatar bucket.

    Returns:
        (object key, public URL)
    """
    data, content_type = await read_upload(file)
    bucket = get_settings().storage_avatar_bucket
    if ensure_bucket:
        await storage.ensure_bucket(bucket)

    key = avatar_key(prefix, file.filename, with_random=with_random)
    await storage.upload(bucket, key, data, content_type=content_type)
    return key, storage.public_url(bucket, key)


async def remove_document(storage: StorageService, key: Optional[str]) -> None:
    """Delete a publication file; storage errors are logged only."""
    if not key:
        return
    try:
        await storage.delete_objects(get_settings().storage_publication_bucket, [key])
    except (ClientError, BotoCoreError) as e:
        logger.warning("publication_file_cleanup_failed", key=key, error=str(e))
