"""Error taxonomy shared by the core operations and the HTTP layer."""
from __future__ import annotations
from enum import Enum


class ErrorType(str, Enum):
    """Categorized failure reported with every failed outcome."""
    VALIDATION_FAILURE = "ValidationFailure"
    OWNERSHIP_DENIED = "OwnershipDenied"
    REMOTE_STORE_FAILURE = "RemoteStoreFailure"
    COMPENSATION_FAILURE = "CompensationFailure"
    DUPLICATE_IDENTITY = "DuplicateIdentity"
    MALFORMED_TOKEN = "MalformedToken"
    MISSING_CLAIM = "MissingClaim"


class ValidationFailure(ValueError):
    """Input rejected before any remote call."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class TokenError(Exception):
    """Bearer token could not be turned into an access claim."""
    error_type = ErrorType.MALFORMED_TOKEN


class MalformedToken(TokenError):
    error_type = ErrorType.MALFORMED_TOKEN


class MissingClaim(TokenError):
    error_type = ErrorType.MISSING_CLAIM
