"""Custom exceptions for the ingestion pipeline."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception with a structured payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    fatal: bool = False

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
        """Convert to a log/report friendly dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


# -----------------------------------------------------------------------------
# Per-stock (non-fatal) failures
# -----------------------------------------------------------------------------


class FetchError(AppException):
    """A required source page could not be fetched."""

    error_code = "FETCH_FAILED"
    message = "Source page could not be fetched"


class ExtractionError(AppException):
    """No usable values could be extracted from a source page."""

    error_code = "EXTRACTION_FAILED"
    message = "No values could be extracted"


class PersistenceError(AppException):
    """A write to storage failed."""

    error_code = "PERSISTENCE_FAILED"
    message = "Storage write failed"


class NotFoundError(AppException):
    """Resource not found."""

    error_code = "NOT_FOUND"
    message = "Resource not found"


class JobError(AppException):
    """Job execution failed."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"


# -----------------------------------------------------------------------------
# Startup-time (fatal) failures
# -----------------------------------------------------------------------------


class ConfigurationError(AppException):
    """Required configuration is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"
    fatal = True


class StorageUnavailableError(AppException):
    """Storage could not be reached at startup."""

    error_code = "STORAGE_UNAVAILABLE"
    message = "Storage is unreachable"
    fatal = True
