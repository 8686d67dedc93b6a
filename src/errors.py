"""
ChapterIP - Engine Exception Hierarchy

Every public service operation converts these into structured failures
(``success=False`` plus ``error`` / ``error_kind``) at its boundary. Pure
calculators raise them directly.

Kinds:
- validation: bad input shape, caller must fix the request
- not_found: missing parent, chapter, or tier
- unsupported: interface method whose implementation has not landed
- ledger: ledger/network failure carrying its classification
- persistence: secondary-store write failed (reported as a warning only)
"""

from dataclasses import dataclass, field
from typing import Any


class EngineError(Exception):
    """Base exception for licensing and royalty engine errors."""

    kind = "engine"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "kind": self.kind,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(EngineError):
    """Raised when request input is malformed."""

    kind = "validation"


class NotFoundError(EngineError):
    """Raised when a parent, chapter, or tier cannot be found."""

    kind = "not_found"


class InvalidTierError(NotFoundError):
    """Raised when a license tier name is not in the registry."""

    def __init__(self, tier: str):
        super().__init__(f"Invalid license tier: {tier}", {"tier": tier})
        self.tier = tier


class UnsupportedOperationError(EngineError):
    """Raised by interface methods that have no implementation yet."""

    kind = "unsupported"

    def __init__(self, operation: str, message: str | None = None):
        super().__init__(message or f"{operation} is not supported", {"operation": operation})
        self.operation = operation


class LedgerError(EngineError):
    """
    A ledger failure after classification and retries.

    Wraps the original exception and exposes the parsed code, category,
    severity, and retryability.
    """

    kind = "ledger"

    def __init__(
        self,
        message: str,
        code: str,
        category: str = "unknown",
        severity: str = "medium",
        can_retry: bool = False,
        cause: Exception | None = None,
    ):
        super().__init__(
            message,
            {"code": code, "category": category, "severity": severity, "can_retry": can_retry},
        )
        self.code = code
        self.category = category
        self.severity = severity
        self.can_retry = can_retry
        self.cause = cause
        if cause:
            self.__cause__ = cause

    @classmethod
    def from_exception(cls, error: Exception) -> "LedgerError":
        """Classify an arbitrary ledger exception."""
        if isinstance(error, LedgerError):
            return error

        from blockchain_errors import categorize_blockchain_error, parse_blockchain_error

        parsed = parse_blockchain_error(error)
        category = categorize_blockchain_error(error)
        return cls(
            message=f"{parsed.message} ({error})",
            code=parsed.code.value,
            category=category.category,
            severity=category.severity,
            can_retry=category.can_retry,
            cause=error,
        )


class PersistenceWarning(EngineError):
    """Secondary-store write failed after the ledger effect succeeded."""

    kind = "persistence"

    def __init__(self, key: str, cause: Exception):
        super().__init__(f"Failed to persist {key}: {cause}", {"key": key})
        self.key = key
        self.cause = cause


@dataclass
class OperationResult:
    """Common shape of service results: success flag, error, warnings."""

    success: bool
    error: str | None = None
    error_kind: str | None = None
    warnings: list[str] = field(default_factory=list)

    def _base_dict(self) -> dict[str, Any]:
        result = {"success": self.success}
        if self.error:
            result["error"] = self.error
            result["errorKind"] = self.error_kind
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result

    def to_dict(self) -> dict[str, Any]:
        return self._base_dict()

    @classmethod
    def failure(cls, error: EngineError, **kwargs):
        """Build a failed result from an engine error."""
        return cls(success=False, error=error.message, error_kind=error.kind, **kwargs)
