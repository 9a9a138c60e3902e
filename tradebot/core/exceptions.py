"""Custom exceptions with structured error payloads."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception with structured error payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a problem-style dict for run records and logs."""
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ExternalServiceError(AppException):
    """External service error (market data, brokerage)."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


class StorageError(AppException):
    """Persistent storage operation failed."""

    error_code = "STORAGE_ERROR"
    message = "Storage operation failed"


class JobError(AppException):
    """Job execution failed."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"


class ResearchCycleError(AppException):
    """A research cycle could not complete."""

    error_code = "RESEARCH_CYCLE_FAILED"
    message = "Research cycle could not complete"


class PaperTradeStateError(AppException):
    """Illegal paper trade state transition."""

    error_code = "PAPER_TRADE_STATE"
    message = "Paper trade is not open"
