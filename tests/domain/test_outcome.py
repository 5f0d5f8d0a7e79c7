"""Tests for folding domain results and errors into OperationResult."""

from app.domain.outcome import OperationResult, run_operation
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


async def returns(value):
    return value


async def raises(error: Exception):
    raise error


class TestRunOperation:
    async def test_success_with_message(self):
        result = await run_operation(returns(3), "Done")

        assert result == OperationResult(success=True, message="Done", data=3)

    async def test_message_from_result(self):
        result = await run_operation(returns(None), lambda v: "nothing" if v is None else "something")

        assert result.message == "nothing"

    async def test_app_error(self):
        error = AppError(AppErrorCode.E_MEMBER_NOT_FOUND, "Member not found: carol", HttpStatusCode.NOT_FOUND)

        result = await run_operation(raises(error))

        assert result.success is False
        assert result.errcode == AppErrorCode.E_MEMBER_NOT_FOUND.value
        assert result.status_code == 404
        assert result.message == "Member not found: carol"
        assert result.data is None

    async def test_unexpected_error_is_internal(self):
        result = await run_operation(raises(KeyError("boom")))

        assert result.errcode == AppErrorCode.E_INTERNAL_ERROR.value
        assert result.status_code == 500
        assert "boom" not in result.message
