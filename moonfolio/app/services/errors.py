"""
Error taxonomy shared by the ledger, valuation, adapters and API layer.

Every error carries:
- message: human readable
- error_code: stable machine code (NOT_FOUND, INVALID_ARGUMENT, ...)
- details: extra context for the caller
- applied: "none" when nothing was written (safe to retry) or
  "partial" when some writes may have landed (manual reconciliation)

Adapters translate transport failures into UpstreamUnavailableError;
nothing outside this module should leak httpx or database exceptions to
the API layer.
"""
from typing import Optional


class MoonfolioError(Exception):
    """Base exception for domain errors."""
    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"
    retry_safe: bool = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.applied = "none"

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "applied": self.applied,
            "retry_safe": self.retry_safe and self.applied == "none",
            }


class NotFoundError(MoonfolioError):
    """Referenced portfolio/asset/transaction/user does not exist."""
    status_code = 404
    default_code = "NOT_FOUND"


class InvalidArgumentError(MoonfolioError):
    """Request is malformed: rejected before any mutation."""
    status_code = 400
    default_code = "INVALID_ARGUMENT"


class InvariantViolationError(MoonfolioError):
    """Operation would break a ledger invariant (e.g. negative balance)."""
    status_code = 422
    default_code = "INVARIANT_VIOLATION"


class ConflictError(MoonfolioError):
    """Concurrent write on the same asset; the caller may retry."""
    status_code = 409
    default_code = "CONFLICT"
    retry_safe = True


class UpstreamUnavailableError(MoonfolioError):
    """Price source or chain node failed, timed out or rate limited us."""
    status_code = 503
    default_code = "UPSTREAM_UNAVAILABLE"
    retry_safe = True


class PartiallyAppliedError(MoonfolioError):
    """
    A multi-step operation could not be rolled back completely.

    Raised only when the rollback itself failed; the original error is
    chained as __cause__ and described in details.
    """
    status_code = 500
    default_code = "PARTIALLY_APPLIED"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, error_code, details)
        self.applied = "partial"
