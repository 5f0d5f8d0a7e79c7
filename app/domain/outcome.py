"""Structured outcome returned by the domain facades."""

from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger
from pydantic import BaseModel

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """Success flag plus a human-readable message; `data` is set on success."""

    success: bool
    message: str
    errcode: str | None = None
    status_code: int = HttpStatusCode.OK.value
    data: T | None = None

    @classmethod
    def ok(cls, data: T | None = None, message: str = "OK") -> "OperationResult[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: AppError) -> "OperationResult[T]":
        return cls(
            success=False,
            message=error.errmesg,
            errcode=error.errcode,
            status_code=error.status_code,
        )


async def run_operation(
    operation: Awaitable[T],
    message: str | Callable[[T], str] = "OK",
) -> OperationResult[T]:
    """Await a domain operation and fold its result or error into an OperationResult."""
    try:
        data = await operation
    except AppError as e:
        log_msg = f"{e.errcode} {e.erresid} msg={e.errmesg} caller={e.caller_info}"
        if e.errcode == AppErrorCode.E_INTERNAL_ERROR.value:
            logger.error(log_msg)
        else:
            logger.warning(log_msg)
        return OperationResult.fail(e)
    except Exception as e:
        logger.exception(f"Unexpected error in domain operation: {type(e).__name__}: {e}")
        return OperationResult(
            success=False,
            message="We are sorry, an error occurred.",
            errcode=AppErrorCode.E_INTERNAL_ERROR.value,
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )

    text = message(data) if callable(message) else message
    return OperationResult.ok(data, text)
