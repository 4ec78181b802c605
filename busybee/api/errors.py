"""
Typed error to HTTP response mapping.

Every handler logs only the request path and the error kind; raw user
input never reaches the log or the response. Error bodies have the shape
``{"error": "<message>"}``; 401 responses have no body.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from busybee.errors import (
    Forbidden,
    PersistenceError,
    ResourceNotFound,
    SandboxEscape,
    TaskAlreadyDone,
    TaskNameConflict,
    TaskNotFound,
    Unauthorized,
    UploadRejected,
    ValidationError,
)
from busybee.utils.logger import setup_logger

logger = setup_logger("api.errors")

# Location prefixes FastAPI adds to request validation errors
_SOURCE_PREFIXES = {"body", "query", "form", "path", "header", "cookie"}


def error_body(message: str) -> dict:
    return {"error": message}


def _field_from_loc(loc) -> str:
    parts = list(loc)
    if parts and parts[0] in _SOURCE_PREFIXES:
        parts = parts[1:]
    field = ""
    for part in parts:
        if isinstance(part, int):
            field += f"[{part}]"
        else:
            field += f".{part}" if field else str(part)
    return field or "request"


def validation_message(errors) -> str:
    """Short ``field: reason`` message for the first request validation error."""
    if not errors:
        return "request: invalid"
    error = errors[0]
    if error.get("type") == "json_invalid":
        return "request: malformed"

    field = _field_from_loc(error.get("loc", ()))
    if error.get("type") == "missing":
        return f"{field}: required"

    inner = (error.get("ctx") or {}).get("error")
    if isinstance(inner, ValidationError):
        return f"{field}: {inner.reason}"
    return f"{field}: invalid"


def _rejected(request: Request, exc: Exception, status_code: int) -> None:
    logger.warning(
        f"Rejected request: path={request.url.path}, type={type(exc).__name__}, status={status_code}"
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        _rejected(request, exc, status.HTTP_400_BAD_REQUEST)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(validation_message(exc.errors())),
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        _rejected(request, exc, status.HTTP_400_BAD_REQUEST)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(exc.code))

    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized):
        _rejected(request, exc, status.HTTP_401_UNAUTHORIZED)
        return Response(status_code=status.HTTP_401_UNAUTHORIZED)

    @app.exception_handler(Forbidden)
    async def forbidden_handler(request: Request, exc: Forbidden):
        _rejected(request, exc, status.HTTP_403_FORBIDDEN)
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=error_body("access denied"))

    @app.exception_handler(TaskNotFound)
    async def task_not_found_handler(request: Request, exc: TaskNotFound):
        _rejected(request, exc, status.HTTP_404_NOT_FOUND)
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=error_body("task: not found"))

    @app.exception_handler(ResourceNotFound)
    async def resource_not_found_handler(request: Request, exc: ResourceNotFound):
        _rejected(request, exc, status.HTTP_404_NOT_FOUND)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content=error_body("resource: not found")
        )

    @app.exception_handler(TaskNameConflict)
    async def name_conflict_handler(request: Request, exc: TaskNameConflict):
        _rejected(request, exc, status.HTTP_409_CONFLICT)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content=error_body("name: task name already exists")
        )

    @app.exception_handler(TaskAlreadyDone)
    async def already_done_handler(request: Request, exc: TaskAlreadyDone):
        _rejected(request, exc, status.HTTP_409_CONFLICT)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=error_body("task: already done"))

    @app.exception_handler(UploadRejected)
    async def upload_rejected_handler(request: Request, exc: UploadRejected):
        _rejected(request, exc, exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=error_body(UploadRejected.WIRE_MESSAGE))

    @app.exception_handler(SandboxEscape)
    async def sandbox_escape_handler(request: Request, exc: SandboxEscape):
        logger.warning(f"Sandbox escape blocked: path={request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=error_body("request: invalid path")
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure: path={request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_body("server: io error")
        )

    @app.exception_handler(OSError)
    async def oserror_exception_handler(request: Request, exc: OSError):
        logger.error(f"OSError caught: path={request.url.path}, errno: {exc.errno}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_body("server: io error")
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        _rejected(request, exc, exc.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail).lower()),
            headers=getattr(exc, "headers", None),
        )
