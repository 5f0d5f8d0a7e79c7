import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.errors import app_error_handler
from app.api.webhooks.stream import router as stream_webhook_router
from app.app_config import get_app_environ_config
from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.membership_cache import MembershipCache
from app.domain.video.status_bus import StatusBus
from app.domain.video.video_cache import VideoCache
from app.domain.video.video_pipeline import VideoPipeline
from app.domain.viewer.viewer_domain import ViewerService
from app.schemas.init_schemas import init_schema
from app.services.integrations.s3_storage import S3Service
from app.services.transcoder.transcoder_client import TranscodeClient
from app.shared.api.health import router as health_router
from app.shared.api.utils import E_INVALID_PARAMS, api_failure, init_logger, load_routes
from app.shared.config import config
from app.shared.storage.mongo import get_mongo_manager
from app.shared.storage.redis import get_redis_manager
from app.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    app_config = get_app_environ_config()
    if app_config.DEMO_MODE:
        logger.warning("DEMO_MODE is on: object storage and the transcoder are stubbed")

    server.state.redis_manager = get_redis_manager()
    server.state.redis_client = server.state.redis_manager.get_cache_client(
        config.get_redis_major_label()
    )

    # Initialize MongoDB schemas and Beanie ODM
    await init_schema()

    storage = S3Service()
    transcoder = TranscodeClient()
    status_bus = StatusBus(queue_size=app_config.STATUS_QUEUE_SIZE)

    broadcast_cache = MembershipCache(
        server.state.redis_client,
        members_ttl=app_config.MEMBERS_CACHE_TTL_SECONDS,
        broadcast_ttl=app_config.BROADCAST_CACHE_TTL_SECONDS,
    )
    video_cache = VideoCache(server.state.redis_client, ttl=app_config.VIDEO_CACHE_TTL_SECONDS)

    broadcast_service = BroadcastService(broadcast_cache, storage)
    server.state.status_bus = status_bus
    server.state.broadcast_service = broadcast_service
    server.state.video_pipeline = VideoPipeline(
        storage=storage,
        transcoder=transcoder,
        bus=status_bus,
        broadcasts=broadcast_service,
        broadcast_cache=broadcast_cache,
        video_cache=video_cache,
    )
    server.state.viewer_service = ViewerService(
        server.state.redis_client,
        video_cache,
        collection_ttl=app_config.COLLECTION_CACHE_TTL_SECONDS,
    )

    yield

    logger.info("Application shutdown...")

    await server.state.video_pipeline.shutdown()
    await server.state.redis_manager.close_all()
    get_mongo_manager().close_all()


app = FastAPI(
    version="1.0",
    title="Broadcast Video API",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

DEBUG = config.get("DEBUG", "false").lower() == "true"

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=[x.strip() for x in config.get("API_CORS_ORIGINS", "*").split(",") if x.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

load_routes(app, "/api/v1")
app.include_router(stream_webhook_router)
app.include_router(health_router)


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": config.get("API_HOST", "0.0.0.0"),
        "port": int(config.get("API_PORT", "8000")),
        "workers": int(config.get("API_WORKERS", "1")),
        "reload": DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("app.main:app", **granian_kwargs).serve()
