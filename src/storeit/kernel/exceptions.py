"""Unified exception hierarchy for storeit.

All library exceptions inherit from StoreitException, enabling unified
error handling: catch StoreitException to handle every criteria or store
failure, or catch specific subclasses for targeted handling.

Categories:
- ExtractionException: a request object could not be turned into Criteria
- StoreException: a store operation was rejected or found nothing

Errors raised by the database driver are not wrapped; they surface as
:data:`BackendError` (``sqlalchemy.exc.SQLAlchemyError``) so callers can
inspect backend-specific detail.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

BackendError = SQLAlchemyError


# =============================================================================
# Base Exception
# =============================================================================


class StoreitException(Exception):
    """Base exception for all storeit errors.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "MALFORMED_TAG").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    default_code: str | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code if code is not None else self.default_code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Extraction Exceptions
# =============================================================================


class ExtractionException(StoreitException):
    """A request object could not be compiled into Criteria."""


class InvalidSourceException(ExtractionException):
    """The extraction target is missing or is not a structured record."""

    default_code = "INVALID_SOURCE"


class NilSourceException(InvalidSourceException):
    """The extraction target is ``None``."""

    default_code = "NIL_SOURCE"


class NotAStructException(InvalidSourceException):
    """The extraction target is not a dataclass instance or pydantic model."""

    default_code = "NOT_A_STRUCT"


class MalformedTagException(ExtractionException):
    """A criteria tag does not have the ``<targets>:<operator>`` shape."""

    default_code = "MALFORMED_TAG"


class TypeCoercionException(ExtractionException):
    """A field value cannot be converted to the type its directive needs."""

    default_code = "TYPE_COERCION"


# =============================================================================
# Store Exceptions
# =============================================================================


class StoreException(StoreitException):
    """A store operation was rejected or produced no result."""


class EmptyIdListException(StoreException):
    """A lookup by ids was called with no ids."""

    default_code = "EMPTY_ID_LIST"


class NotFoundException(StoreException):
    """A single-result lookup matched no rows."""

    default_code = "NOT_FOUND"


class MissingWhereClauseException(StoreException):
    """A bulk update or delete was attempted without any predicate."""

    default_code = "MISSING_WHERE"
