"""
Image uploads to S3

Course images, user avatars and carousel slides live in one bucket under a
folder per kind; the public URL is what gets stored on the documents.
"""

import asyncio
import logging
import mimetypes
import uuid
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile

from training_portal.config import (
    AWS_ACCESS_KEY_ID,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    IMAGE_BASE_URL,
    MAX_IMAGE_BYTES,
    S3_BUCKET_NAME,
)

logger = logging.getLogger(__name__)

COURSE_IMAGE_FOLDER = "CourseImage"
AVATAR_FOLDER = "UserAvatars"
CAROUSEL_FOLDER = "CarouselImage"


class ImageUploadError(Exception):
    pass


class ImageStorage:
    def __init__(self, bucket: str = S3_BUCKET_NAME, base_url: str = IMAGE_BASE_URL):
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self.s3_client = boto3.client(
            "s3",
            region_name=AWS_REGION,
            aws_access_key_id=AWS_ACCESS_KEY_ID,
            aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
        )

    def _key(self, folder: str, filename: Optional[str], public_id: Optional[str]) -> str:
        extension = ""
        if filename and "." in filename:
            extension = "." + filename.rsplit(".", 1)[1].lower()
        return f"{folder}/{public_id or uuid.uuid4().hex}{extension}"

    async def upload(
        self,
        data: bytes,
        folder: str,
        filename: Optional[str] = None,
        public_id: Optional[str] = None,
    ) -> str:
        """Store bytes and return the public URL"""
        key = self._key(folder, filename, public_id)
        content_type = mimetypes.guess_type(filename or "")[0] or "application/octet-stream"

        try:
            # boto3 is blocking
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload of %s failed: %s", key, e)
            raise ImageUploadError(str(e)) from e

        logger.info("Uploaded image %s", key)
        return f"{self.base_url}/{key}"

    async def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix):
            return
        key = url[len(prefix):]
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.warning("S3 delete of %s failed: %s", key, e)


_storage: Optional[ImageStorage] = None


def get_image_storage() -> ImageStorage:
    global _storage
    if _storage is None:
        _storage = ImageStorage()
    return _storage


async def upload_image_file(
    storage: ImageStorage,
    upload: UploadFile,
    folder: str,
    public_id: Optional[str] = None,
) -> str:
    """Validate an uploaded form file and push it to storage; HTTP errors on failure."""
    if upload.content_type and not upload.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=413, detail="Image is too large")

    try:
        return await storage.upload(data, folder, upload.filename, public_id)
    except ImageUploadError:
        raise HTTPException(status_code=500, detail="Failed to upload image")
