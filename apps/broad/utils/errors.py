"""
Error taxonomy shared by services and route handlers.

Every error carries the HTTP status and the machine-readable code used in the
response envelope. Exception handlers in ``broad.api.main`` render them.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Any = None,
    ):
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request data"


class BadRequestError(ApiError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(ApiError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Insufficient permissions"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"

    @classmethod
    def for_resource(cls, resource: str) -> "NotFoundError":
        return cls(f"{resource} not found")


class ConflictError(ApiError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class InternalError(ApiError):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"


class DataAccessError(InternalError):
    """A storage call failed. The message names the operation and the driver error."""


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """
    Wrap storage errors raised inside the block as ``DataAccessError``.

    ``ApiError`` subclasses raised inside the block pass through unchanged.

    Usage:
        with storage_errors("get profile"):
            result = await session.execute(...)
    """
    try:
        yield
    except ApiError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Failed to {operation}: {e}")
        raise DataAccessError(f"Failed to {operation}: {e}") from e


def _is_unique_violation(error: IntegrityError) -> bool:
    """True when the driver reports a unique constraint (Postgres 23505 or SQLite UNIQUE)."""
    orig = error.orig
    if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
        return True
    text = str(orig).lower()
    return "unique constraint" in text or "duplicate key" in text


async def commit_or_conflict(
    session: Any, operation: str, conflict_message: Optional[str] = None
) -> None:
    """
    Commit the session, translating storage failures.

    Unique violations roll back and raise ``ConflictError`` with
    ``conflict_message``. Other integrity violations (missing reference, NOT
    NULL) raise ``BadRequestError``; any other storage error raises
    ``DataAccessError``.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if _is_unique_violation(e):
            logger.warning(f"Conflict while trying to {operation}: {e.orig}")
            raise ConflictError(conflict_message) from e
        logger.warning(f"Constraint violation while trying to {operation}: {e.orig}")
        raise BadRequestError(f"Could not {operation}: invalid or missing data") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to {operation}: {e}")
        raise DataAccessError(f"Failed to {operation}: {e}") from e
