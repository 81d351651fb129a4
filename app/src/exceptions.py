"""
Centralized exception handling for the Fleet Desk API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError, OperationalError
from psycopg2.errorcodes import (
    UNIQUE_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    NOT_NULL_VIOLATION,
)
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    diag = e.orig.diag
    errorMessage: str = diag.message_detail or diag.message_primary or ""
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def sqlState(e: IntegrityError) -> str | None:
    """Return the PostgreSQL SQLSTATE of an integrity error, None for other drivers."""
    diag = getattr(e.orig, "diag", None)
    return getattr(diag, "sqlstate", None)


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


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, IntegrityError):
        state = sqlState(e)
        if state == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if state == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
        if state == NOT_NULL_VIOLATION:
            raise NotNullViolation(formatIntegrityError(e))
    if isinstance(e, OperationalError):
        logException(e)
        raise DatabaseUnavailable()
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors(include_url=False, include_context=False))
    if isinstance(e, APIException):
        raise e
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

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


class NotNullViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "NotNullViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class DatabaseUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "The database could not be reached"
    headers = {"X-Error": "DatabaseUnavailable"}


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid username or password"
    headers = {"X-Error": "InvalidCredentials"}


class InactiveAccount(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The account is not in active status"
    headers = {"X-Error": "InactiveAccount"}


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class InvalidStateTransition(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, column_name: Column, reason: str | None = None):
        detail = f"The {column_name.name} cannot be set to the provided value"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail=detail)


class InactiveResource(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    headers = {"X-Error": "InactiveResource"}

    def __init__(self, orm_class):
        detail = (
            f"The status of {orm_class.__name__} is not in an active or useful state"
        )
        super().__init__(detail=detail)


class DataInUse(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "DataInUse"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is currently in use"
        super().__init__(detail=detail)


class AssignmentConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "AssignmentConflict"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is already assigned to another active booking"
        super().__init__(detail=detail)


class AssignmentInProgress(APIException):
    status_code = status.HTTP_409_CONFLICT
    headers = {"X-Error": "AssignmentInProgress"}

    def __init__(self, orm_class):
        detail = f"Another {orm_class.__name__} assignment is in progress for this booking"
        super().__init__(detail=detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)
