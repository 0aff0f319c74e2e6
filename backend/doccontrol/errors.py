"""
Error taxonomy and the uniform action result envelope.

Service functions raise a ``WorkflowError`` subclass; the handlers registered
by ``register_exception_handlers`` turn every failure into an ``ActionResult``
with ``success=False`` so no exception leaves a request unformatted.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "UNEXPECTED"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(WorkflowError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "NOT_AUTHENTICATED"
    default_message = "Not authenticated"


class Forbidden(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class NotFound(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_message = "Not found"


class ValidationError(WorkflowError):
    status_code = 422
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class Conflict(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    default_message = "The request conflicts with the current state of the document"


class Unexpected(WorkflowError):
    pass


class ActionResult(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: Any = None


def ok(message: str | None = None, data: Any = None) -> ActionResult:
    return ActionResult(success=True, message=message, data=data)


def _failure(status_code: int, error_code: str, message: str) -> JSONResponse:
    body = ActionResult(success=False, error=message, error_code=error_code)
    return JSONResponse(body.model_dump(mode="json"), status_code=status_code)


_HTTP_ERROR_CODES = {
    401: NotAuthenticated.error_code,
    403: Forbidden.error_code,
    404: NotFound.error_code,
    409: Conflict.error_code,
    422: ValidationError.error_code,
}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def _workflow_error_handler(request: Request, exc: WorkflowError):
        logger.info(
            "Action failed. path=%s code=%s message=%s", request.url.path, exc.error_code, exc.message
        )
        return _failure(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return _failure(exc.status_code, code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "Invalid request"))
        return _failure(ValidationError.status_code, ValidationError.error_code, message)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled request error. path=%s method=%s", request.url.path, request.method)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, Unexpected.error_code, Unexpected.default_message)
