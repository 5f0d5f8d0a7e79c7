from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.domain.outcome import OperationResult
from app.shared.api.utils import ApiFailure, make_response
from app.utils.app_errors import AppError, AppErrorCode


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Custom exception handler for AppError.
    Converts AppError to ApiFailure and returns via make_response.
    """
    # Log with the caller info captured when AppError was raised
    log_msg = f"{exc.errcode} {exc.erresid} msg={exc.errmesg} caller={exc.caller_info}"
    if exc.errcode == AppErrorCode.E_INTERNAL_ERROR.value:
        logger.error(log_msg)
    else:
        logger.warning(log_msg)

    failure = ApiFailure(errcode=exc.errcode, errmesg=exc.errmesg, erresid=exc.erresid)
    return make_response(failure, status_code=exc.status_code)


def failure_response(result: OperationResult) -> JSONResponse:
    """Render a failed domain outcome as an ApiFailure with its mapped status."""
    failure = ApiFailure(
        errcode=result.errcode or AppErrorCode.E_INTERNAL_ERROR.value,
        errmesg=result.message,
    )
    return make_response(failure, status_code=result.status_code)
