"""Booking ledger error taxonomy and the FastAPI handlers that render it."""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.logger_config import logger


class DomainError(Exception):
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidInputError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class UnauthorizedError(DomainError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InsufficientSeatsError(DomainError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough seats available: requested {requested}, available {available}",
            status.HTTP_409_CONFLICT,
        )


class AlreadyCancelledError(DomainError):
    def __init__(self, booking_id: int):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} is already cancelled", status.HTTP_409_CONFLICT)


class LedgerInvariantError(DomainError):
    """
    Raised when committed seat accounting would become inconsistent.
    The offending transaction is rolled back.
    """

    def __init__(self, event_id: int, detail: str):
        self.event_id = event_id
        self.detail = detail
        super().__init__(
            f"Seat accounting inconsistency on event {event_id}: {detail}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _describe_validation_errors(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        # drop the "body"/"query"/"path" prefix, callers only know field names
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(problems) or "Invalid request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _describe_validation_errors(exc)
    logger.info(f"{request.method} {request.url.path} rejected (400): {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


EXCEPTION_HANDLERS = {
    DomainError: domain_error_handler,
    RequestValidationError: validation_error_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
