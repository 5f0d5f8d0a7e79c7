"""Ingest callback for live streams that ended at the media server.

The ingest server retries on any non-2xx answer, so this endpoint always
acknowledges with HTTP 200 and a success body. Problems are logged only.
"""

from typing import Any

from fastapi import APIRouter, Request
from loguru import logger
from pydantic import BaseModel, ValidationError

from app.domain.video.video_pipeline import VideoPipeline
from app.shared.api.utils import ApiSuccess

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


class StreamEndedEvent(BaseModel):
    stream_key: str


class StreamWebhookSuccess(ApiSuccess):
    results: dict[str, Any]  # type: ignore[assignment]


async def _read_payload(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return dict(form)
    return await request.json()


@router.post("/stream/ended", response_model=StreamWebhookSuccess)
async def stream_ended(request: Request) -> StreamWebhookSuccess:
    """Finish the live video bound to `stream_key`. Accepts JSON or form bodies."""
    try:
        payload = await _read_payload(request)
        event = StreamEndedEvent.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed stream-ended webhook: {e}")
        return StreamWebhookSuccess(results={"handled": False, "reason": "malformed payload"})

    logger.info(f"Stream ended webhook for key {event.stream_key[:8]}...")

    try:
        pipeline: VideoPipeline = request.app.state.video_pipeline
        result = await pipeline.handle_stream_ended(event.stream_key)
    except Exception as e:
        logger.exception(f"Stream ended webhook crashed: {e}")
        return StreamWebhookSuccess(results={"handled": False, "reason": "internal error"})

    if not result.success:
        logger.error(
            f"Stream ended webhook failed: errcode={result.errcode} message={result.message}"
        )
        return StreamWebhookSuccess(results={"handled": False, "reason": result.errcode})

    return StreamWebhookSuccess(
        results={
            "handled": result.data is not None,
            "video_id": result.data.video_id if result.data else None,
            "message": result.message,
        }
    )
