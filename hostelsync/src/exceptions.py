"""
Centralized exception handling for the HostelSync transport API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Every exception carries its kind in the `X-Error` header; `apiExceptionHandler`
also puts it in the response body as `{"kind": ..., "detail": ...}`.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeout
from psycopg2.errorcodes import (
    UNIQUE_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    QUERY_CANCELED,
    LOCK_NOT_AVAILABLE,
)
from pydantic import ValidationError
from redis.exceptions import RedisError, TimeoutError as RedisTimeout
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def sqlState(e: Exception) -> str | None:
    """Return the SQLSTATE code carried by a DBAPI error, if the driver provides one."""
    orig = getattr(e, "orig", None)
    return getattr(orig, "pgcode", None)


def isStorageTimeout(e: Exception) -> bool:
    """Check whether a raw storage error means the store did not answer in time."""
    if isinstance(e, (PoolTimeout, RedisTimeout)):
        return True
    if isinstance(e, OperationalError):
        return sqlState(e) in (QUERY_CANCELED, LOCK_NOT_AVAILABLE)
    return False


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)

    @property
    def kind(self) -> str:
        if self.headers and "X-Error" in self.headers:
            return self.headers["X-Error"]
        return type(self).__name__


async def apiExceptionHandler(request: Request, e: APIException) -> JSONResponse:
    """Render an APIException as `{"kind": ..., "detail": ...}`."""
    return JSONResponse(
        status_code=e.status_code,
        content={"kind": e.kind, "detail": e.detail},
        headers=e.headers,
    )


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, APIException):
        raise e
    if isinstance(e, IntegrityError):
        state = sqlState(e)
        if state == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if state == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors())
    if isStorageTimeout(e):
        logException(e)
        raise StorageTimeout()
    if isinstance(e, (OperationalError, RedisError)):
        logException(e)
        raise StorageUnavailable()

    logException(e)
    raise e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ForeignKeyViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class Unauthorized(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This user has no permission to perform this action"
    headers = {"X-Error": "Unauthorized"}


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "NotFound"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} does not exist"
        super().__init__(detail=detail)


class ScheduleInactive(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The schedule is not accepting bookings"
    headers = {"X-Error": "ScheduleInactive"}


class InvalidDate(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "InvalidDate"}

    def __init__(self, detail: str = "The booking date is not served by the schedule"):
        super().__init__(detail=detail)


class DuplicateBooking(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "An active booking already exists for this schedule and date"
    headers = {"X-Error": "DuplicateBooking"}


class ScheduleFull(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "No seats left on this schedule for the requested date"
    headers = {"X-Error": "ScheduleFull"}


class AlreadyTerminal(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "AlreadyTerminal"}

    def __init__(self, status_name: str = "terminal"):
        detail = f"The booking is already {status_name.lower()}"
        super().__init__(detail=detail)


class InvalidStateTransition(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, column_name: Column):
        detail = f"The {column_name.name} cannot be set to the provided value"
        super().__init__(detail=detail)


class DataInUse(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "DataInUse"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is currently in use"
        super().__init__(detail=detail)


class StorageTimeout(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "The storage did not respond in time, retry later"
    headers = {"X-Error": "StorageTimeout", "Retry-After": "1"}


class StorageUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "The storage is unavailable, retry later"
    headers = {"X-Error": "StorageUnavailable", "Retry-After": "1"}
