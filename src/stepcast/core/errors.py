"""Stepcast · Error Hierarchy.

All custom exceptions inherit from StepcastError, which carries an
error_code and optional details dict for programmatic handling.

Usage::

    from stepcast.core.errors import ConfigError

    raise ConfigError("Bot token missing", error_code="CONFIG_MISSING_TOKEN")
"""

from __future__ import annotations


class StepcastError(Exception):
    """Base exception for all Stepcast errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "STEPCAST_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigError(StepcastError):
    """Configuration errors (missing credentials, invalid values). Fatal at startup."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class PersistenceError(StepcastError):
    """The job store could not be read or written."""

    def __init__(
        self,
        message: str,
        error_code: str = "PERSISTENCE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class DispatchError(StepcastError):
    """The notifier failed to deliver a message."""

    def __init__(
        self,
        message: str,
        error_code: str = "DISPATCH_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
