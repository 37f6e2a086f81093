"""Domain-specific exception classes for the payout engine.

Every user-visible failure is a :class:`PayoutError` carrying a stable
machine-readable :class:`ErrorCode`, a human message, and the HTTP status the
API layer should answer with.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from payouts.domain.types import SubmissionStatus


class ErrorCode(StrEnum):
    """Stable error codes surfaced to API callers."""

    # Input validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_URL = "INVALID_URL"
    MISSING_REASON = "MISSING_REASON"
    REASON_TOO_LONG = "REASON_TOO_LONG"
    # Authorization / identity
    IDENTITY_NOT_LINKED = "IDENTITY_NOT_LINKED"
    IDENTITY_EXPIRED = "IDENTITY_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    OWN_CAMPAIGN = "OWN_CAMPAIGN"
    BANNED = "BANNED"
    # Campaign gates
    NOT_FOUND = "NOT_FOUND"
    INVALID_TYPE = "INVALID_TYPE"
    CLOSED = "CLOSED"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    INVALID_STATUS = "INVALID_STATUS"
    # Ledger invariants
    DUPLICATE = "DUPLICATE"
    BUDGET_EXHAUSTED = "BUDGET_EXHAUSTED"
    USER_CAP_REACHED = "USER_CAP_REACHED"
    MISSING_ENGAGEMENT = "MISSING_ENGAGEMENT"
    NO_SUBMISSIONS = "NO_SUBMISSIONS"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    BUNDLE_PENDING = "BUNDLE_PENDING"
    # External verification
    INVALID_PAYMENT = "INVALID_PAYMENT"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    NOT_POST_OWNER = "NOT_POST_OWNER"
    INSUFFICIENT_ENGAGEMENT = "INSUFFICIENT_ENGAGEMENT"
    CONTENT_CHECK_ERROR = "CONTENT_CHECK_ERROR"
    CONTENT_REJECTED = "CONTENT_REJECTED"
    TX_NOT_FOUND = "TX_NOT_FOUND"
    TX_FAILED = "TX_FAILED"
    TX_VERIFY_ERROR = "TX_VERIFY_ERROR"
    # Server
    CONFIG_ERROR = "CONFIG_ERROR"


# HTTP status per code; anything not listed answers 400.
HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.IDENTITY_EXPIRED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.BANNED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE: 409,
    ErrorCode.BUNDLE_PENDING: 409,
    ErrorCode.EXTERNAL_API_ERROR: 502,
    ErrorCode.CONTENT_CHECK_ERROR: 502,
    ErrorCode.CONFIG_ERROR: 503,
}


class PayoutError(Exception):
    """Base class for all domain errors in the payout engine.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable explanation.
        details: Extra JSON-serializable context (e.g. a measured view count).
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"{code}: {message}")

    @property
    def status_code(self) -> int:
        """HTTP status the API layer should answer with."""
        return HTTP_STATUS.get(self.code, 400)

    def to_dict(self) -> dict[str, Any]:
        """Render the error as the API's failure envelope."""
        return {"success": False, "error": self.code.value, "message": self.message, **self.details}


class InvalidTransitionError(PayoutError):
    """Raised when a submission status change is not in the transition map.

    Attributes:
        current_state: The state the submission was in.
        event: The event that was rejected.
    """

    def __init__(self, current_state: SubmissionStatus, event: str) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(
            ErrorCode.INVALID_STATUS,
            f"Cannot apply event '{event}' in state '{current_state}'",
            {"status": current_state.value},
        )


class VerifierError(Exception):
    """Raised by external verifier adapters; the message is surfaced verbatim."""


class IdentityExpiredError(VerifierError):
    """Raised when a linked platform account's access credential has expired."""
