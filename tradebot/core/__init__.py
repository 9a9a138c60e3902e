"""Core infrastructure: settings, logging, exceptions, data helpers."""

from .config import Settings, get_settings, settings
from .exceptions import (
    AppException,
    ExternalServiceError,
    JobError,
    PaperTradeStateError,
    ResearchCycleError,
    StorageError,
)


__all__ = [
    "AppException",
    "ExternalServiceError",
    "JobError",
    "PaperTradeStateError",
    "ResearchCycleError",
    "Settings",
    "StorageError",
    "get_settings",
    "settings",
]
