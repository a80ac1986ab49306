"""Error types and standardized error responses.

Caller-input errors are raised as exceptions and abort only the call that
raised them; they are never retried internally. Each exception carries a
machine-readable code and category and can be rendered as the standard
error response dict used by the HTTP API.

Usage:
    from cachebid.core.errors import NotFound, resource_error, ErrorCode

    raise NotFound(f"{artifact_id} is not registered for {owner_id}")

    # Or, when a dict response is wanted instead of an exception:
    return resource_error("no such owner", code=ErrorCode.NOT_FOUND)
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Broad class of an error, used for HTTP status and retry decisions.

    - VALIDATION: Caller provided bad input
    - PERMISSION: Caller not authorized
    - RESOURCE: Not found, already exists, limits and balances
    - EXECUTION: Bid submission problems
    - SYSTEM: Internal errors
    """

    VALIDATION = "validation"
    PERMISSION = "permission"
    RESOURCE = "resource"
    EXECUTION = "execution"
    SYSTEM = "system"


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""

    # Validation errors
    INVALID_IDENTIFIER = "invalid_identifier"
    INVALID_BID = "invalid_bid"
    INVALID_AMOUNT = "invalid_amount"
    TOO_MANY_BIDS = "too_many_bids"
    INVALID_REQUEST = "invalid_request"

    # Permission errors
    NOT_AUTHORIZED = "not_authorized"
    PAUSED = "paused"

    # Resource errors
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    TOO_MANY_ENTRIES = "too_many_entries"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    EXCEEDS_CAP = "exceeds_cap"

    # Execution errors
    ADMISSION_REJECTED = "admission_rejected"

    # System errors
    INTERNAL_ERROR = "internal_error"


@dataclass
class ErrorResponse:
    """Body returned for every failed API call.

    code is stable and meant for programs; error is for people. retriable
    tells a scheduler whether running the same call later can succeed.
    """

    success: bool = False
    error: str = ""
    code: str = ""
    category: str = ""
    retriable: bool = False
    details: dict[str, object] | None = None

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "success": self.success,
            "error": self.error,
            "code": self.code,
            "category": self.category,
            "retriable": self.retriable,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# EXCEPTIONS
# =============================================================================


class CacheBidError(Exception):
    """Base class for caller-input errors.

    Subclasses pin the code and category; callers only supply the message
    and optional details.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.message,
            code=self.code.value,
            category=self.category.value,
            retriable=False,
            details=self.details or None,
        )

    def to_dict(self) -> dict[str, object]:
        return self.to_response().to_dict()


class InvalidIdentifier(CacheBidError):
    """The artifact identifier is the null identifier."""

    code = ErrorCode.INVALID_IDENTIFIER
    category = ErrorCategory.VALIDATION


class InvalidBid(CacheBidError):
    """The spending ceiling is below the configured minimum."""

    code = ErrorCode.INVALID_BID
    category = ErrorCategory.VALIDATION


class InvalidAmount(CacheBidError):
    """A funding amount is below the configured minimum."""

    code = ErrorCode.INVALID_AMOUNT
    category = ErrorCategory.VALIDATION


class TooManyBids(CacheBidError):
    """A worklist is larger than the configured batch size."""

    code = ErrorCode.TOO_MANY_BIDS
    category = ErrorCategory.VALIDATION


class TooManyEntries(CacheBidError):
    code = ErrorCode.TOO_MANY_ENTRIES
    category = ErrorCategory.RESOURCE


class AlreadyExists(CacheBidError):
    code = ErrorCode.ALREADY_EXISTS
    category = ErrorCategory.RESOURCE


class NotFound(CacheBidError):
    code = ErrorCode.NOT_FOUND
    category = ErrorCategory.RESOURCE


class InsufficientBalance(CacheBidError):
    code = ErrorCode.INSUFFICIENT_BALANCE
    category = ErrorCategory.RESOURCE


class ExceedsCap(CacheBidError):
    code = ErrorCode.EXCEEDS_CAP
    category = ErrorCategory.RESOURCE


class Unauthorized(CacheBidError):
    """The caller may not perform this operation."""

    code = ErrorCode.NOT_AUTHORIZED
    category = ErrorCategory.PERMISSION


class Paused(CacheBidError):
    """Bid execution is paused by the admin."""

    code = ErrorCode.PAUSED
    category = ErrorCategory.PERMISSION


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def _response(
    category: ErrorCategory,
    message: str,
    code: ErrorCode,
    retriable: bool,
    details: dict[str, object],
) -> dict[str, object]:
    return ErrorResponse(
        error=message,
        code=code.value,
        category=category.value,
        retriable=retriable,
        details=details or None,
    ).to_dict()


def validation_error(
    message: str,
    code: ErrorCode = ErrorCode.INVALID_REQUEST,
    **details: object,
) -> dict[str, object]:
    """Malformed request body or parameters."""
    return _response(ErrorCategory.VALIDATION, message, code, False, details)


def resource_error(
    message: str,
    code: ErrorCode = ErrorCode.NOT_FOUND,
    **details: object,
) -> dict[str, object]:
    """Missing entry or owner, limits and balances."""
    return _response(ErrorCategory.RESOURCE, message, code, False, details)


def execution_error(
    message: str,
    code: ErrorCode = ErrorCode.ADMISSION_REJECTED,
    retriable: bool = True,
    **details: object,
) -> dict[str, object]:
    """A bid the oracle did not accept.

    Retriable by default: the artifact is eligible again next cycle.
    """
    return _response(ErrorCategory.EXECUTION, message, code, retriable, details)


def system_error(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    retriable: bool = True,
    **details: object,
) -> dict[str, object]:
    return _response(ErrorCategory.SYSTEM, message, code, retriable, details)
