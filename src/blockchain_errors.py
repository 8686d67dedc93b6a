"""
ChapterIP - Blockchain Error Classification & Retry Strategy

Maps arbitrary ledger and network failures onto a fixed taxonomy:

- parse_blockchain_error: error -> code, user-facing message, retryability
- categorize_blockchain_error: error -> category, severity, retryability
- get_retry_strategy: error -> whether/how often/how slowly to retry
- execute_with_retry_strategy: run a ledger operation under that strategy

Matching priority for untyped errors:
contract revert -> network/fetch -> gas/limit -> insufficient funds ->
nonce -> unknown.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import requests

from errors import NotFoundError, UnsupportedOperationError, ValidationError
from retry import MAX_BACKOFF_DELAY, RetryConfig, calculate_delay, retry_call

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"0x[a-fA-F0-9]{64}")


# =============================================================================
# Enums
# =============================================================================


class ErrorCode(Enum):
    """Error codes for ledger operations."""

    # Network errors
    NETWORK_ERROR = "NETWORK_ERROR"
    RPC_ERROR = "RPC_ERROR"
    TIMEOUT = "TIMEOUT"

    # Transaction errors
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    GAS_LIMIT_EXCEEDED = "GAS_LIMIT_EXCEEDED"
    NONCE_TOO_LOW = "NONCE_TOO_LOW"
    REPLACEMENT_UNDERPRICED = "REPLACEMENT_UNDERPRICED"

    # Contract errors
    CONTRACT_REVERT = "CONTRACT_REVERT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    UNAUTHORIZED = "UNAUTHORIZED"

    # IP registry specific errors
    IP_ALREADY_REGISTERED = "IP_ALREADY_REGISTERED"
    INVALID_LICENSE_TERMS = "INVALID_LICENSE_TERMS"
    UNAUTHORIZED_DERIVATIVE = "UNAUTHORIZED_DERIVATIVE"
    INSUFFICIENT_ROYALTY_BALANCE = "INSUFFICIENT_ROYALTY_BALANCE"

    # Operation wrappers (classified by their cause)
    IP_REGISTRATION_FAILED = "IP_REGISTRATION_FAILED"
    LICENSE_ATTACHMENT_FAILED = "LICENSE_ATTACHMENT_FAILED"
    ROYALTY_CLAIM_FAILED = "ROYALTY_CLAIM_FAILED"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorCategory(Enum):
    """Coarse grouping used for retry policy."""

    NETWORK = "network"
    CONTRACT = "contract"
    USER = "user"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for ledger errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# User-facing messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.NETWORK_ERROR: "Network connection failed. Please check your internet connection.",
    ErrorCode.RPC_ERROR: "Blockchain network is experiencing issues. Please try again later.",
    ErrorCode.TIMEOUT: "Transaction timed out. Please try again.",
    ErrorCode.INSUFFICIENT_FUNDS: "Insufficient funds to complete the transaction.",
    ErrorCode.GAS_LIMIT_EXCEEDED: "Transaction requires more gas than the limit allows.",
    ErrorCode.NONCE_TOO_LOW: "Transaction nonce is too low. Please refresh and try again.",
    ErrorCode.REPLACEMENT_UNDERPRICED: "Gas price is too low to replace the pending transaction.",
    ErrorCode.CONTRACT_REVERT: "Smart contract rejected the transaction.",
    ErrorCode.INVALID_ADDRESS: "Invalid blockchain address provided.",
    ErrorCode.UNAUTHORIZED: "You are not authorized to perform this action.",
    ErrorCode.IP_ALREADY_REGISTERED: "This content is already registered as an IP asset.",
    ErrorCode.INVALID_LICENSE_TERMS: "Invalid license terms provided.",
    ErrorCode.UNAUTHORIZED_DERIVATIVE: "You are not authorized to create derivatives of this IP.",
    ErrorCode.INSUFFICIENT_ROYALTY_BALANCE: "Insufficient royalty balance to claim.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Please try again.",
}

RETRYABLE_CODES = {
    ErrorCode.NETWORK_ERROR,
    ErrorCode.RPC_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.GAS_LIMIT_EXCEEDED,
    ErrorCode.NONCE_TOO_LOW,
    ErrorCode.REPLACEMENT_UNDERPRICED,
    ErrorCode.UNKNOWN_ERROR,
}

NETWORK_CODES = {ErrorCode.NETWORK_ERROR, ErrorCode.RPC_ERROR, ErrorCode.TIMEOUT}
CONTRACT_CODES = {ErrorCode.CONTRACT_REVERT, ErrorCode.IP_ALREADY_REGISTERED}
USER_CODES = {ErrorCode.INSUFFICIENT_FUNDS, ErrorCode.UNAUTHORIZED}

OPERATION_CODES = {
    ErrorCode.IP_REGISTRATION_FAILED,
    ErrorCode.LICENSE_ATTACHMENT_FAILED,
    ErrorCode.ROYALTY_CLAIM_FAILED,
    ErrorCode.UNKNOWN_ERROR,
}


# =============================================================================
# Exceptions
# =============================================================================


class BlockchainError(Exception):
    """A failed ledger operation."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        original_error: Exception | None = None,
        tx_hash: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.original_error = original_error
        self.tx_hash = tx_hash
        if original_error:
            self.__cause__ = original_error


class ContractRevertError(BlockchainError):
    """The contract rejected the transaction."""

    def __init__(self, message: str, revert_reason: str | None = None, tx_hash: str | None = None):
        super().__init__(message, ErrorCode.CONTRACT_REVERT, tx_hash=tx_hash)
        self.revert_reason = revert_reason


class IPRegistrationError(BlockchainError):
    def __init__(self, message: str, original_error: Exception | None = None, tx_hash: str | None = None):
        super().__init__(message, ErrorCode.IP_REGISTRATION_FAILED, original_error, tx_hash)


class LicenseAttachmentError(BlockchainError):
    def __init__(self, message: str, original_error: Exception | None = None, tx_hash: str | None = None):
        super().__init__(message, ErrorCode.LICENSE_ATTACHMENT_FAILED, original_error, tx_hash)


class RoyaltyClaimError(BlockchainError):
    def __init__(self, message: str, original_error: Exception | None = None, tx_hash: str | None = None):
        super().__init__(message, ErrorCode.ROYALTY_CLAIM_FAILED, original_error, tx_hash)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ParsedError:
    """Result of parsing a ledger error."""

    code: ErrorCode
    message: str
    can_retry: bool
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "canRetry": self.can_retry,
        }


@dataclass(frozen=True)
class ErrorClassification:
    """Category and severity of a ledger error."""

    category: str
    severity: str
    can_retry: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"category": self.category, "severity": self.severity, "canRetry": self.can_retry}


@dataclass(frozen=True)
class RetryStrategy:
    """How a failed ledger operation should be retried."""

    should_retry: bool
    max_retries: int
    base_delay_ms: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "shouldRetry": self.should_retry,
            "maxRetries": self.max_retries,
            "baseDelay": self.base_delay_ms,
        }


# =============================================================================
# Parsing & Categorization
# =============================================================================


def _parsed(code: ErrorCode, details: str | None = None) -> ParsedError:
    return ParsedError(
        code=code,
        message=ERROR_MESSAGES.get(code, ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR]),
        can_retry=code in RETRYABLE_CODES,
        details=details,
    )


def _match_text(error: Exception) -> ErrorCode | None:
    """Pattern-match error text and type in priority order."""
    text = str(error).lower()

    if isinstance(error, ContractRevertError) or "revert" in text:
        return ErrorCode.CONTRACT_REVERT

    if (
        isinstance(error, (ConnectionError, TimeoutError))
        or isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))
        or "network" in text
        or "fetch" in text
    ):
        return ErrorCode.NETWORK_ERROR

    if "gas" in text or "limit" in text:
        return ErrorCode.GAS_LIMIT_EXCEEDED

    if "insufficient" in text or "balance" in text:
        return ErrorCode.INSUFFICIENT_FUNDS

    if "nonce" in text:
        return ErrorCode.NONCE_TOO_LOW

    return None


def parse_blockchain_error(error: Any) -> ParsedError:
    """
    Parse a ledger error into a user-friendly code and message.

    Typed errors with a specific code keep it. Operation wrappers are
    classified by their underlying cause, then by their own text.
    """
    if isinstance(error, BlockchainError) and error.code not in OPERATION_CODES:
        details = None
        if isinstance(error, ContractRevertError) and error.revert_reason:
            details = f"Contract error: {error.revert_reason}"
        elif error.original_error:
            details = str(error.original_error)
        return _parsed(error.code, details or error.message)

    if isinstance(error, BlockchainError) and error.original_error is not None:
        cause = parse_blockchain_error(error.original_error)
        if cause.code != ErrorCode.UNKNOWN_ERROR:
            return cause

    if isinstance(error, Exception):
        code = _match_text(error)
        if code:
            return _parsed(code, str(error))
        return _parsed(ErrorCode.UNKNOWN_ERROR, str(error))

    return _parsed(ErrorCode.UNKNOWN_ERROR, str(error))


def categorize_blockchain_error(error: Any) -> ErrorClassification:
    """Categorize a ledger error for handling and retry decisions."""
    parsed = parse_blockchain_error(error)

    if parsed.code in NETWORK_CODES:
        return ErrorClassification("network", "medium", True)

    if parsed.code in CONTRACT_CODES:
        return ErrorClassification("contract", "high", False)

    if parsed.code in USER_CODES:
        return ErrorClassification("user", "low", False)

    return ErrorClassification("unknown", "medium", parsed.can_retry)


def is_retryable_error(error: Any) -> bool:
    """Check if an error is retryable."""
    return categorize_blockchain_error(error).can_retry


def is_critical_error(error: Any) -> bool:
    """Check if an error is critical."""
    return categorize_blockchain_error(error).severity == ErrorSeverity.CRITICAL.value


def extract_tx_hash_from_error(error: Any) -> str | None:
    """Extract a transaction hash from an error, if it carries one."""
    if isinstance(error, BlockchainError) and error.tx_hash:
        return error.tx_hash

    if isinstance(error, Exception):
        match = TX_HASH_PATTERN.search(str(error))
        return match.group(0) if match else None

    return None


def format_error_for_logging(error: Any, context: str | None = None) -> str:
    """Format an error as a single log line."""
    parsed = parse_blockchain_error(error)
    category = categorize_blockchain_error(error)
    tx_hash = extract_tx_hash_from_error(error)

    message = f"[{category.severity.upper()}] {category.category.upper()}_ERROR: {parsed.message}"
    if context:
        message = f"{context} - {message}"
    if parsed.details:
        message += f" | Details: {parsed.details}"
    if tx_hash:
        message += f" | TxHash: {tx_hash}"

    return message


# =============================================================================
# Retry Strategy
# =============================================================================


def get_retry_strategy(error: Any) -> RetryStrategy:
    """Get the retry strategy for an error."""
    category = categorize_blockchain_error(error)

    if not category.can_retry:
        return RetryStrategy(should_retry=False, max_retries=0, base_delay_ms=0)

    if category.category == ErrorCategory.NETWORK.value:
        return RetryStrategy(should_retry=True, max_retries=5, base_delay_ms=1000)
    if category.category == ErrorCategory.CONTRACT.value:
        return RetryStrategy(should_retry=True, max_retries=2, base_delay_ms=3000)
    return RetryStrategy(should_retry=True, max_retries=3, base_delay_ms=2000)


def calculate_retry_delay(attempt: int, base_delay_ms: float) -> float:
    """Exponential (2^n) delay in milliseconds, capped at 30 seconds."""
    return calculate_delay(attempt, base_delay_ms, 2.0, MAX_BACKOFF_DELAY * 1000)


def retry_blockchain_operation(
    operation: Callable[[], Any],
    max_retries: int = 3,
    base_delay_ms: float = 2000,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Run a ledger operation, retrying retryable failures.

    Waits base_delay * 1.5^attempt (capped at 30s) between attempts.
    Non-retryable failures and the final failure propagate unchanged.
    """
    config = RetryConfig(
        max_retries=max_retries,
        base_delay=base_delay_ms / 1000,
        exponential_base=1.5,
        max_delay=MAX_BACKOFF_DELAY,
    )
    return retry_call(operation, config=config, should_retry=is_retryable_error, sleep=sleep)


def execute_with_retry_strategy(
    operation: Callable[[], Any],
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> Any:
    """
    Run a ledger operation under the strategy chosen by its first failure.
    Validation, not-found and unsupported errors are raised without retry.

    Args:
        operation: Zero-argument ledger call
        sleep: Sleep function (injected by tests)
        on_retry: Optional callback (attempt, exception, delay_seconds)

    Returns:
        The operation's result
    """
    strategy: RetryStrategy | None = None
    attempt = 0

    while True:
        try:
            return operation()
        except (ValidationError, NotFoundError, UnsupportedOperationError):
            raise
        except Exception as e:
            if strategy is None:
                strategy = get_retry_strategy(e)

            if not strategy.should_retry or not is_retryable_error(e):
                raise
            if attempt >= strategy.max_retries - 1:
                logger.error(format_error_for_logging(e, f"Giving up after {attempt + 1} attempts"))
                raise

            delay = calculate_delay(attempt, strategy.base_delay_ms / 1000, 1.5, MAX_BACKOFF_DELAY)
            logger.warning(
                "Ledger operation failed (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1,
                strategy.max_retries,
                delay,
                e,
            )
            if on_retry:
                on_retry(attempt + 1, e, delay)

            sleep(delay)
            attempt += 1
