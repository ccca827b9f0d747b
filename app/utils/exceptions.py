import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from app.utils.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    kind = "error"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(AppException):
    """No vehicle, open session or outstanding payment for the given plate."""

    kind = "not_found"

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConflictError(AppException):
    """Duplicate open session, or a payment that is already settled."""

    kind = "conflict"

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class PaymentRequiredError(AppException):
    """Exit attempted while money is owed or a payment is still pending."""

    kind = "payment_required"

    def __init__(self, message: str):
        super().__init__(message, status_code=402)


class ValidationError(AppException):
    kind = "validation"

    def __init__(self, message: str):
        super().__init__(message, status_code=422)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, data={"kind": exc.kind}),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse(
            status_code=422,
            content=error_response(message, data={"kind": ValidationError.kind}),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
