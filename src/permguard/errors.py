"""
Exception hierarchy for permguard.

All permguard exceptions inherit from PermguardError, allowing callers to
catch every permguard-specific exception with a single except clause.

Note that the decision engine itself never raises for a denial: denials
are returned as PermissionResult objects. Exceptions exist for the seams
around it:

Exception Categories:
    - PermissionDeniedError: Raised by PermissionEngine.require() on denial
    - ConfirmationError: A confirmation handler failed (converted to denial)
    - ConfigError: A configuration file or mapping could not be loaded
    - StorageError: An audit database operation failed

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (permission, path, etc. where applicable)
    - All errors provide actionable suggestions where possible
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Decision errors: 1xxx
ERROR_PERMISSION_DENIED = 1001

# Confirmation errors: 2xxx
ERROR_CONFIRMATION_FAILED = 2001
ERROR_CONFIRMATION_TIMEOUT = 2002
ERROR_CONFIRMATION_TRANSPORT = 2003

# Configuration errors: 3xxx
ERROR_CONFIG_LOAD = 3001
ERROR_CONFIG_INVALID = 3002

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class PermguardError(Exception):
    """
    Base exception for all permguard errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Decision Errors
# =============================================================================


@dataclass
class PermissionDeniedError(PermguardError):
    """
    Raised by PermissionEngine.require() when a check is denied.

    Tool executors that prefer exceptions over inspecting results use this
    to refuse the operation.

    Attributes:
        permission: Name of the permission that was denied
        reason: Why the engine denied it
        request_context: The context supplied with the check
    """

    permission: str = ""
    reason: str = ""
    request_context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Permission denied {self.permission}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_PERMISSION_DENIED
        self.context.update({
            "permission": self.permission,
            "reason": self.reason,
            "request_context": self.request_context,
        })


# =============================================================================
# Confirmation Errors
# =============================================================================


@dataclass
class ConfirmationError(PermguardError):
    """
    Raised by a confirmation handler that could not obtain an answer.

    The confirmation gate never lets these escape a check: they are turned
    into a denial so that a broken prompt cannot fail open.

    Attributes:
        permission: The permission awaiting confirmation
    """

    permission: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Confirmation failed for {self.permission}"
        if self.code == 0:
            self.code = ERROR_CONFIRMATION_FAILED
        self.context["permission"] = self.permission


@dataclass
class ConfirmationTimeoutError(ConfirmationError):
    """Raised when a confirmation handler does not answer in time."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Confirmation for {self.permission} timed out "
                f"after {self.timeout_seconds}s"
            )
        if self.code == 0:
            self.code = ERROR_CONFIRMATION_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase confirmation_timeout_seconds in engine settings"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


@dataclass
class ConfirmationTransportError(ConfirmationError):
    """Raised when a remote approval service cannot be reached or errors."""

    url: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Approval service request failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIRMATION_TRANSPORT
        if not self.suggestion:
            self.suggestion = f"Check that the approval service is reachable at {self.url}"
        super().__post_init__()
        self.context.update({
            "url": self.url,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(PermguardError):
    """
    Base class for configuration errors.

    Attributes:
        source: Where the configuration came from (file path or "<string>")
    """

    source: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["source"] = self.source


@dataclass
class ConfigLoadError(ConfigError):
    """Raised when a configuration file cannot be read or parsed as YAML."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to load configuration {self.source}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_LOAD
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class ConfigValidationError(ConfigError):
    """Raised when configuration data does not match the schema."""

    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration {self.source}: {len(self.errors)} error(s)"
            if self.errors:
                self.message += "\n  - " + "\n  - ".join(self.errors)
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        if not self.suggestion:
            self.suggestion = "Check field names and enum values (scope, risk, operator)"
        super().__post_init__()
        self.context["errors"] = self.errors


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(PermguardError):
    """
    Base class for audit database errors.

    Attributes:
        operation: The operation that failed (e.g., "record", "list_entries")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
