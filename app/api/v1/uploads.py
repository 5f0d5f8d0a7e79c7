from fastapi import UploadFile

from app.domain.broadcast.broadcast_models import ImageUpload
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

MAX_IMAGE_BYTES = 5 * 1024 * 1024

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


async def read_image_upload(file: UploadFile | None) -> ImageUpload | None:
    """Read a multipart image into an ImageUpload, or None when nothing was sent."""
    if file is None or not file.filename:
        return None

    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg=f"Unsupported image type: {content_type or 'unknown'}",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    content = await file.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg=f"Image must be at most {MAX_IMAGE_BYTES // (1024 * 1024)} MB",
            status_code=HttpStatusCode.BAD_REQUEST,
        )
    if not content:
        return None

    return ImageUpload(content=content, content_type=content_type, filename=file.filename)
