import secrets
from uuid import uuid4

from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_broadcast_id() -> str:
    return new_ulid("bc_")


def new_video_id() -> str:
    return new_ulid("vd_")


def new_storage_key() -> str:
    return f"video-storage/{uuid4()}"


def new_stream_key() -> str:
    return f"sk_{secrets.token_urlsafe(24)}"
