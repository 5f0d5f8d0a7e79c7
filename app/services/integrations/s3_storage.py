"""AWS S3 helper service.

Thin async wrapper around aioboto3 for the object storage the video pipeline
needs: presigned upload/read URLs, prefix listing, batch delete and image
uploads.

Usage:
    from app.services.integrations.s3_storage import S3Service

    storage = S3Service()
    url = await storage.presign_put("video-storage/1b9d...", "video/mp4")
    keys = await storage.list_objects("transcoded/video-storage/1b9d.../")
    await storage.delete_objects(keys)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from app.app_config import get_app_environ_config
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
_DELETE_BATCH_SIZE = 1000

_IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _upstream_error(action: str, key: str, e: Exception) -> AppError:
    logger.error(f"S3 {action} failed for {key}: {e}")
    return AppError(
        errcode=AppErrorCode.E_UPSTREAM_FAILURE,
        errmesg=f"Object storage {action} failed",
        status_code=HttpStatusCode.BAD_GATEWAY,
    )


class S3Service:
    """Service wrapper for AWS S3 operations.

    With DEMO_MODE enabled every call is stubbed: URLs are deterministic fakes
    and nothing leaves the process.
    """

    def __init__(self, demo_mode: bool | None = None) -> None:
        app_config = get_app_environ_config()
        self._session: aioboto3.Session | None = None
        self._region = app_config.AWS_REGION
        self._bucket_name = app_config.S3_VIDEO_BUCKET
        self._demo_mode = app_config.DEMO_MODE if demo_mode is None else demo_mode
        logger.info("S3Service initialized")

    def _get_session(self) -> aioboto3.Session:
        """Get or create aioboto3 session."""
        if self._session is None:
            app_config = get_app_environ_config()
            if not app_config.AWS_ACCESS_KEY_ID or not app_config.AWS_SECRET_ACCESS_KEY:
                raise AppError(
                    errcode=AppErrorCode.E_UPSTREAM_FAILURE,
                    errmesg="AWS credentials not configured",
                    status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
                )

            self._session = aioboto3.Session(
                aws_access_key_id=app_config.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=app_config.AWS_SECRET_ACCESS_KEY,
                region_name=self._region,
            )
            logger.info(f"S3 session created for region: {self._region}")

        return self._session

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator:  # type: ignore[misc]
        """Get async S3 client context manager."""
        session = self._get_session()
        async with session.client("s3") as client:  # type: ignore[attr-defined]
            yield client

    def _get_bucket_name(self) -> str:
        if not self._bucket_name:
            raise AppError(
                errcode=AppErrorCode.E_UPSTREAM_FAILURE,
                errmesg="S3_VIDEO_BUCKET not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return self._bucket_name

    def public_url(self, key: str) -> str:
        bucket = self._bucket_name or "demo-bucket"
        return f"https://{bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def presign_put(self, key: str, content_type: str, expires_in: int = 3600) -> str:
        """Issue a write credential (presigned PUT URL) for `key`.

        Raises:
            AppError: If the URL cannot be generated (E_UPSTREAM_FAILURE)
        """
        if self._demo_mode:
            url = f"{self.public_url(key)}?X-Amz-Expires={expires_in}&demo=put"
            logger.info(f"S3Service DEMO_MODE=true: stubbed presign_put {key}")
            return url

        try:
            async with self._get_client() as client:
                return await client.generate_presigned_url(
                    "put_object",
                    Params={"Bucket": self._get_bucket_name(), "Key": key, "ContentType": content_type},
                    ExpiresIn=expires_in,
                )
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("presign_put", key, e) from e

    async def presign_get(self, key: str, expires_in: int = 21540) -> str:
        """Issue a read credential (presigned GET URL) for `key`."""
        if self._demo_mode:
            return f"{self.public_url(key)}?X-Amz-Expires={expires_in}&demo=get"

        try:
            async with self._get_client() as client:
                return await client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self._get_bucket_name(), "Key": key},
                    ExpiresIn=expires_in,
                )
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("presign_get", key, e) from e

    async def presign_many(self, keys: list[str], expires_in: int = 21540) -> dict[str, str]:
        """Presign several keys with one client."""
        if self._demo_mode:
            return {key: await self.presign_get(key, expires_in) for key in keys}

        urls: dict[str, str] = {}
        try:
            async with self._get_client() as client:
                bucket = self._get_bucket_name()
                for key in keys:
                    urls[key] = await client.generate_presigned_url(
                        "get_object",
                        Params={"Bucket": bucket, "Key": key},
                        ExpiresIn=expires_in,
                    )
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("presign_get", ",".join(keys[:3]), e) from e
        return urls

    async def list_objects(self, prefix: str) -> list[str]:
        """List every object key under `prefix`."""
        if self._demo_mode:
            logger.info(f"S3Service DEMO_MODE=true: stubbed list_objects {prefix} (empty)")
            return []

        keys: list[str] = []
        try:
            async with self._get_client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self._get_bucket_name(), Prefix=prefix):
                    keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("list_objects", prefix, e) from e

        return keys

    async def delete_objects(self, keys: list[str]) -> int:
        """Delete `keys` in batches. Returns the number of keys deleted."""
        if not keys:
            return 0

        if self._demo_mode:
            logger.info(f"S3Service DEMO_MODE=true: stubbed delete_objects ({len(keys)} keys)")
            return len(keys)

        deleted = 0
        try:
            async with self._get_client() as client:
                bucket = self._get_bucket_name()
                for start in range(0, len(keys), _DELETE_BATCH_SIZE):
                    batch = keys[start:start + _DELETE_BATCH_SIZE]
                    response = await client.delete_objects(
                        Bucket=bucket,
                        Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                    )
                    errors = response.get("Errors") or []
                    if errors:
                        raise ClientError(
                            {"Error": {"Code": errors[0].get("Code"), "Message": errors[0].get("Message")}},
                            "DeleteObjects",
                        )
                    deleted += len(batch)
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("delete_objects", keys[0], e) from e

        logger.info(f"Deleted {deleted} objects")
        return deleted

    async def delete_object(self, key: str) -> None:
        await self.delete_objects([key])

    async def upload_image(self, folder: str, content: bytes, content_type: str) -> tuple[str, str]:
        """Upload an image under `folder`. Returns (key, public URL)."""
        extension = _IMAGE_EXTENSIONS.get(content_type, "bin")
        key = f"{folder}/{uuid4()}.{extension}"

        if self._demo_mode:
            url = self.public_url(key)
            logger.info(f"S3Service DEMO_MODE=true: stubbed upload {key} -> {url}")
            return key, url

        try:
            async with self._get_client() as client:
                await client.put_object(
                    Bucket=self._get_bucket_name(),
                    Key=key,
                    Body=content,
                    ContentType=content_type,
                    CacheControl="public, max-age=86400",
                )
        except (ClientError, BotoCoreError) as e:
            raise _upstream_error("upload", key, e) from e

        url = self.public_url(key)
        logger.info(f"Uploaded image: {key} -> {url}")
        return key, url
