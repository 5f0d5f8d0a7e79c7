from pydantic import BaseModel

from app.shared.config import config


class AppEnvironConfig(BaseModel):
    # When enabled, object storage and the transcoder are stubbed and make no network calls.
    DEMO_MODE: bool = config.get("DEMO_MODE", "true").strip().lower() == "true"  # type: ignore

    API_BASE_URL: str = config.get("API_BASE_URL", "http://localhost:8000").strip()  # type: ignore
    MONGO_DB_NAME: str = config.get("MONGO_DB_NAME", "broadcast_video").strip()  # type: ignore

    # Caller identity tokens (issued by the identity provider)
    AUTH_JWT_SECRET: str = config.get("AUTH_JWT_SECRET", "dev-auth-secret").strip()  # type: ignore
    AUTH_JWT_ALGORITHM: str = config.get("AUTH_JWT_ALGORITHM", "HS256").strip()  # type: ignore

    # Broadcast-scoped membership tokens (issued by join_broadcast)
    BROADCAST_TOKEN_SECRET: str = config.get(
        "BROADCAST_TOKEN_SECRET", "dev-broadcast-secret"
    ).strip()  # type: ignore
    BROADCAST_TOKEN_TTL_SECONDS: int = int(
        (config.get("BROADCAST_TOKEN_TTL_SECONDS") or "").strip() or 7 * 24 * 3600
    )

    # AWS S3 configuration
    AWS_ACCESS_KEY_ID: str | None = (config.get("AWS_ACCESS_KEY_ID") or "").strip() or None
    AWS_SECRET_ACCESS_KEY: str | None = (config.get("AWS_SECRET_ACCESS_KEY") or "").strip() or None
    AWS_REGION: str = config.get("AWS_REGION", "us-east-1").strip()  # type: ignore
    S3_VIDEO_BUCKET: str | None = (config.get("S3_VIDEO_BUCKET") or "").strip() or None
    S3_UPLOAD_URL_EXPIRES: int = int((config.get("S3_UPLOAD_URL_EXPIRES") or "").strip() or 3600)
    S3_SIGNED_URL_EXPIRES: int = int((config.get("S3_SIGNED_URL_EXPIRES") or "").strip() or 21540)

    # Transcoding worker (gRPC)
    TRANSCODER_ADDRESS: str = config.get("TRANSCODER_ADDRESS", "localhost:50051").strip()  # type: ignore
    TRANSCODER_TIMEOUT_SECONDS: float = float(
        (config.get("TRANSCODER_TIMEOUT_SECONDS") or "").strip() or 3600
    )
    TRANSCODER_USE_TLS: bool = config.get("TRANSCODER_USE_TLS", "false").strip().lower() == "true"  # type: ignore

    # Cache TTLs
    MEMBERS_CACHE_TTL_SECONDS: int = int(
        (config.get("MEMBERS_CACHE_TTL_SECONDS") or "").strip() or 60
    )
    BROADCAST_CACHE_TTL_SECONDS: int = int(
        (config.get("BROADCAST_CACHE_TTL_SECONDS") or "").strip() or 3600
    )
    VIDEO_CACHE_TTL_SECONDS: int = int((config.get("VIDEO_CACHE_TTL_SECONDS") or "").strip() or 60)
    COLLECTION_CACHE_TTL_SECONDS: int = int(
        (config.get("COLLECTION_CACHE_TTL_SECONDS") or "").strip() or 300
    )

    # Status delivery
    STATUS_QUEUE_SIZE: int = int((config.get("STATUS_QUEUE_SIZE") or "").strip() or 100)


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
