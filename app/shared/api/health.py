from fastapi import APIRouter, Request
from loguru import logger
from redis.exceptions import RedisError

from app.schemas import Broadcast
from app.utils.app_errors import AppErrorCode

from .utils import ApiFailure, ApiSuccess, make_response


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health():
    return ApiSuccess(results="OK")


@router.get('/health/ready')
async def ready(request: Request):
    """Ping the cache and the document store."""
    checks = {}
    try:
        await request.app.state.redis_client.ping()
        checks['redis'] = 'OK'
    except (RedisError, ConnectionError, OSError) as e:
        logger.warning(f"Readiness: redis unavailable: {e}")
        checks['redis'] = 'DOWN'

    try:
        await Broadcast.get_motor_collection().database.command('ping')
        checks['mongo'] = 'OK'
    except Exception as e:
        logger.warning(f"Readiness: mongo unavailable: {e}")
        checks['mongo'] = 'DOWN'

    if all(v == 'OK' for v in checks.values()):
        return ApiSuccess(results=checks)

    failure = ApiFailure(errcode=AppErrorCode.E_UPSTREAM_FAILURE.value, errmesg=str(checks))
    return make_response(failure, status_code=503)
