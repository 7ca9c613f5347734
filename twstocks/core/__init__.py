"""Core infrastructure: settings, logging, exceptions."""

from .config import settings
from .exceptions import (
    AppException,
    ConfigurationError,
    ExtractionError,
    FetchError,
    JobError,
    NotFoundError,
    PersistenceError,
    StorageUnavailableError,
)
from .logging import get_logger, setup_logging


__all__ = [
    "AppException",
    "ConfigurationError",
    "ExtractionError",
    "FetchError",
    "JobError",
    "NotFoundError",
    "PersistenceError",
    "StorageUnavailableError",
    "get_logger",
    "settings",
    "setup_logging",
]
