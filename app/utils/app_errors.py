"""Application error types shared by domain, services and routers."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    # NotAuthorized
    E_BAD_TOKEN = "E_BAD_TOKEN"
    E_NOT_AUTHORIZED = "E_NOT_AUTHORIZED"

    # NotFound
    E_BROADCAST_NOT_FOUND = "E_BROADCAST_NOT_FOUND"
    E_VIDEO_NOT_FOUND = "E_VIDEO_NOT_FOUND"
    E_MEMBER_NOT_FOUND = "E_MEMBER_NOT_FOUND"

    # Conflict
    E_BROADCAST_EXISTS = "E_BROADCAST_EXISTS"
    E_BROADCAST_NAME_TAKEN = "E_BROADCAST_NAME_TAKEN"
    E_ALREADY_MEMBER = "E_ALREADY_MEMBER"
    E_STREAM_ALREADY_ACTIVE = "E_STREAM_ALREADY_ACTIVE"
    E_COLLABORATION_EXISTS = "E_COLLABORATION_EXISTS"
    E_VERSION_CONFLICT = "E_VERSION_CONFLICT"

    # InvalidTransition
    E_INVALID_ROLE_TRANSITION = "E_INVALID_ROLE_TRANSITION"
    E_INVALID_VIDEO_TRANSITION = "E_INVALID_VIDEO_TRANSITION"
    E_CANNOT_REMOVE_OWNER = "E_CANNOT_REMOVE_OWNER"

    # UpstreamFailure
    E_UPSTREAM_FAILURE = "E_UPSTREAM_FAILURE"
    E_NO_PLAYABLE_FORMAT = "E_NO_PLAYABLE_FORMAT"

    # ValidationFailure
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Domain error carrying an error code and the HTTP status it maps to.

    The caller location is captured when the error is raised so the handler
    can log where it originated.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: HttpStatusCode | int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ):
        self.errcode = str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        frame = inspect.currentframe()
        caller = frame.f_back if frame is not None else None
        if caller is None:
            self.caller_info = "unknown"
        else:
            code = caller.f_code
            module_name = caller.f_globals.get("__name__") or code.co_filename
            self.caller_info = f"{module_name}:{code.co_name}:{caller.f_lineno}"
        del frame, caller

        super().__init__(f"{self.errcode}: {errmesg}")
