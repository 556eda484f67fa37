"""storeit Kernel — exception hierarchy shared by every module."""

from storeit.kernel.exceptions import (
    BackendError,
    EmptyIdListException,
    ExtractionException,
    InvalidSourceException,
    MalformedTagException,
    MissingWhereClauseException,
    NilSourceException,
    NotAStructException,
    NotFoundException,
    StoreException,
    StoreitException,
    TypeCoercionException,
)

__all__ = [
    # Base
    "StoreitException",
    "BackendError",
    # Extraction
    "ExtractionException",
    "InvalidSourceException",
    "NilSourceException",
    "NotAStructException",
    "MalformedTagException",
    "TypeCoercionException",
    # Store
    "StoreException",
    "EmptyIdListException",
    "NotFoundException",
    "MissingWhereClauseException",
]
