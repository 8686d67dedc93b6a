"""
ChapterIP - Ledger Gateway Client
Speaks JSON over HTTPS with HMAC authentication to the gateway that mints
IP assets, registers license terms, links derivatives, and claims royalties.

Every operation either returns a receipt or raises LedgerTransactionError
whose message carries the gateway's error text, so the blockchain error
classifier can decide how to handle it.
"""

import contextlib
import hashlib
import hmac
import itertools
import json
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from blockchain_errors import BlockchainError, ErrorCode
from errors import UnsupportedOperationError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LEDGER_ENDPOINT = "http://localhost:8787"

API_VERSION = "v1"

# Timeouts (seconds)
DEFAULT_TIMEOUT = 30
CONNECT_TIMEOUT = 10

# Transport-level retries for idempotent gateway errors only; ledger
# semantics are retried by the classifier's strategy.
TRANSPORT_RETRIES = 2
TRANSPORT_BACKOFF_FACTOR = 0.5

# HMAC configuration
HMAC_HEADER = "X-ChapterIP-Signature"
TIMESTAMP_HEADER = "X-ChapterIP-Timestamp"
NONCE_HEADER = "X-ChapterIP-Nonce"

# Default royalty currency (wrapped IP token)
DEFAULT_CURRENCY_TOKEN = "0x1514000000000000000000000000000000000000"

# Status codes meaning "this gateway cannot answer that question"
UNSUPPORTED_STATUS_CODES = (404, 501)


# =============================================================================
# Exceptions
# =============================================================================


class LedgerTransactionError(BlockchainError):
    """The gateway rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        operation: str,
        status_code: int | None = None,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        tx_hash: str | None = None,
    ):
        super().__init__(message, code=code, tx_hash=tx_hash)
        self.operation = operation
        self.status_code = status_code


# =============================================================================
# Receipts
# =============================================================================


@dataclass
class LicenseTermsReceipt:
    license_terms_id: str
    tx_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {"licenseTermsId": self.license_terms_id, "txHash": self.tx_hash}


@dataclass
class IPRegistrationReceipt:
    ip_id: str
    token_id: str
    tx_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {"ipId": self.ip_id, "tokenId": self.token_id, "txHash": self.tx_hash}


@dataclass
class TransactionReceipt:
    tx_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {"txHash": self.tx_hash}


@dataclass
class RoyaltyClaimReceipt:
    tx_hash: str
    claimed_amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"txHash": self.tx_hash, "claimedAmount": str(self.claimed_amount)}


@dataclass
class LicenseTermsInfo:
    """Active license terms of an IP asset."""

    license_terms_id: str
    tier: str
    derivatives_allowed: bool = True
    commercial_use: bool = False
    royalty_percentage: int = 0
    conditions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "licenseTermsId": self.license_terms_id,
            "tier": self.tier,
            "derivativesAllowed": self.derivatives_allowed,
            "commercialUse": self.commercial_use,
            "royaltyPercentage": self.royalty_percentage,
            "conditions": list(self.conditions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LicenseTermsInfo":
        return cls(
            license_terms_id=str(data["licenseTermsId"]),
            tier=data.get("tier", "premium"),
            derivatives_allowed=data.get("derivativesAllowed", True),
            commercial_use=data.get("commercialUse", False),
            royalty_percentage=data.get("royaltyPercentage", 0),
            conditions=list(data.get("conditions", [])),
        )


@dataclass
class LedgerHealth:
    status: str
    chain_id: str
    block_number: int

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "chainId": self.chain_id, "blockNumber": self.block_number}


# =============================================================================
# HMAC Authentication
# =============================================================================


class HMACSigner:
    """
    HMAC-SHA256 request signing.

    Each request carries a timestamp and a random nonce so the gateway can
    reject replays.
    """

    def __init__(self, secret_key: str):
        self.secret_key = secret_key.encode("utf-8")

    def compute_signature(
        self, method: str, path: str, timestamp: int, nonce: str, body: str | None = None
    ) -> str:
        sign_string = f"{method.upper()}\n{path}\n{timestamp}\n{nonce}\n{body or ''}"
        return hmac.new(self.secret_key, sign_string.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign_request(
        self, method: str, path: str, body: str | None = None, timestamp: int | None = None
    ) -> dict[str, str]:
        """
        Sign a request and return authentication headers.

        Args:
            method: HTTP method
            path: Request path
            body: Request body (JSON string)
            timestamp: Optional timestamp (uses current time if not provided)
        """
        if timestamp is None:
            timestamp = int(time.time())

        nonce = secrets.token_hex(16)
        signature = self.compute_signature(method, path, timestamp, nonce, body)

        return {HMAC_HEADER: signature, TIMESTAMP_HEADER: str(timestamp), NONCE_HEADER: nonce}


# =============================================================================
# Ledger Client
# =============================================================================


class LedgerClient:
    """
    Client for the ledger gateway.

    Features:
    - HTTPS with TLS certificate verification
    - HMAC request authentication
    - Transport retry on 502/503/504
    - Request audit log (body hashes only)
    """

    def __init__(
        self,
        endpoint: str | None = None,
        secret_key: str | None = None,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Gateway URL (default: CHAPTERIP_LEDGER_ENDPOINT)
            secret_key: Shared secret for HMAC signing
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
        """
        endpoint = endpoint or os.getenv("CHAPTERIP_LEDGER_ENDPOINT", DEFAULT_LEDGER_ENDPOINT)
        self.endpoint = endpoint.rstrip("/")
        self.api_base = f"{self.endpoint}/api/{API_VERSION}"
        self.verify_ssl = verify_ssl
        self.timeout = timeout

        self.signer = HMACSigner(secret_key) if secret_key else None

        self.session = self._setup_session()
        self.audit_log: list[dict[str, Any]] = []
        self._audit_lock = threading.Lock()

    def _setup_session(self) -> requests.Session:
        """Set up requests session with transport retry."""
        session = requests.Session()

        retry_strategy = Retry(
            total=TRANSPORT_RETRIES,
            backoff_factor=TRANSPORT_BACKOFF_FACTOR,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"ChapterIP-Python/{API_VERSION}",
            }
        )
        return session

    def _audit(self, entry: dict[str, Any]) -> None:
        with self._audit_lock:
            self.audit_log.append(entry)

    def _make_request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> tuple[bool, Any]:
        """
        Make an authenticated HTTP request.

        Returns:
            Tuple of (success, response_data or error)
        """
        url = f"{self.api_base}{path}"
        body_str = json.dumps(body) if body else None

        headers = {}
        if self.signer:
            headers.update(self.signer.sign_request(method, path, body_str))

        request_log = {
            "timestamp": datetime.utcnow().isoformat(),
            "method": method,
            "path": path,
            "params": params,
            "body_hash": hashlib.sha256(body_str.encode()).hexdigest() if body_str else None,
        }

        try:
            response = self.session.request(
                method=method,
                url=url,
                data=body_str,
                params=params,
                headers=headers,
                timeout=(CONNECT_TIMEOUT, self.timeout),
                verify=self.verify_ssl,
            )

            request_log["status_code"] = response.status_code
            request_log["success"] = response.ok
            self._audit(request_log)

            if response.ok:
                try:
                    return True, response.json()
                except json.JSONDecodeError:
                    return True, {"raw": response.text}

            error_data = {
                "error": f"HTTP {response.status_code}",
                "status_code": response.status_code,
                "message": response.text,
            }
            with contextlib.suppress(ValueError):
                payload = response.json()
                if isinstance(payload, dict):
                    error_data.update(payload)
            return False, error_data

        except requests.exceptions.Timeout:
            request_log["error"] = "timeout"
            self._audit(request_log)
            return False, {"error": "Network timeout: request timed out"}
        except requests.exceptions.SSLError as e:
            request_log["error"] = f"ssl_error: {e!s}"
            self._audit(request_log)
            return False, {"error": f"Network SSL error: {e!s}"}
        except requests.exceptions.ConnectionError as e:
            request_log["error"] = f"connection_error: {e!s}"
            self._audit(request_log)
            return False, {"error": f"Network connection error: {e!s}"}

    def _call(self, operation: str, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make a request and raise LedgerTransactionError on failure."""
        success, data = self._make_request(method, path, body=body)
        if success:
            return data

        data = data if isinstance(data, dict) else {"error": str(data)}
        message = data.get("message") or data.get("error") or "Ledger request failed"
        if data.get("error") and data.get("message") and data["error"] not in data["message"]:
            message = f"{data['error']}: {data['message']}"

        logger.warning("Ledger %s failed: %s", operation, message)
        raise LedgerTransactionError(
            message,
            operation=operation,
            status_code=data.get("status_code"),
            tx_hash=data.get("txHash"),
        )

    # =========================================================================
    # License Operations
    # =========================================================================

    def register_license_terms(self, terms: dict[str, Any]) -> LicenseTermsReceipt:
        """Register programmable license terms."""
        data = self._call("register_license_terms", "POST", "/license-terms", terms)
        return LicenseTermsReceipt(str(data["licenseTermsId"]), data["txHash"])

    def attach_license_terms(self, ip_id: str, license_terms_id: str) -> TransactionReceipt:
        data = self._call(
            "attach_license_terms",
            "POST",
            f"/ip-assets/{ip_id}/license-terms",
            {"licenseTermsId": license_terms_id},
        )
        return TransactionReceipt(data["txHash"])

    def get_license_terms(self, ip_id: str) -> LicenseTermsInfo:
        """
        Look up the active license terms of an IP asset.

        Raises:
            UnsupportedOperationError: If the gateway cannot resolve license terms
            LedgerTransactionError: On any other failure
        """
        path = f"/ip-assets/{ip_id}/license-terms"
        success, data = self._make_request("GET", path)
        if success:
            return LicenseTermsInfo.from_dict(data)

        if isinstance(data, dict) and data.get("status_code") in UNSUPPORTED_STATUS_CODES:
            raise UnsupportedOperationError(
                "get_license_terms", f"License inheritance lookup is not supported for {ip_id}"
            )

        message = data.get("message") or data.get("error") if isinstance(data, dict) else str(data)
        raise LedgerTransactionError(message or "Ledger request failed", operation="get_license_terms")

    # =========================================================================
    # IP Asset Operations
    # =========================================================================

    def mint_and_register_ip(self, params: dict[str, Any]) -> IPRegistrationReceipt:
        """Mint an NFT for the content and register it as an IP asset."""
        data = self._call("mint_and_register_ip", "POST", "/ip-assets", params)
        return IPRegistrationReceipt(data["ipId"], str(data.get("tokenId", "")), data["txHash"])

    def register_derivative(
        self, child_ip_id: str, parent_ip_ids: list[str], license_terms_ids: list[str]
    ) -> TransactionReceipt:
        data = self._call(
            "register_derivative",
            "POST",
            "/derivatives",
            {
                "childIpId": child_ip_id,
                "parentIpIds": list(parent_ip_ids),
                "licenseTermsIds": list(license_terms_ids),
            },
        )
        return TransactionReceipt(data["txHash"])

    # =========================================================================
    # Royalty Operations
    # =========================================================================

    def claim_royalties(
        self, ip_id: str, claimer: str, currency_tokens: list[str] | None = None
    ) -> RoyaltyClaimReceipt:
        data = self._call(
            "claim_royalties",
            "POST",
            "/royalties/claim",
            {
                "ipId": ip_id,
                "claimer": claimer,
                "currencyTokens": currency_tokens or [DEFAULT_CURRENCY_TOKEN],
            },
        )
        return RoyaltyClaimReceipt(data["txHash"], int(data.get("claimedAmount", 0)))

    # =========================================================================
    # Health Check
    # =========================================================================

    def health_check(self) -> tuple[bool, LedgerHealth | dict[str, Any]]:
        """
        Check gateway health.

        Returns:
            Tuple of (success, health or error)
        """
        url = f"{self.endpoint}/health"
        try:
            response = self.session.get(
                url, timeout=(CONNECT_TIMEOUT, self.timeout), verify=self.verify_ssl
            )
        except requests.exceptions.RequestException as e:
            return False, {"error": str(e)}

        if not response.ok:
            return False, {"error": f"HTTP {response.status_code}"}

        data = response.json()
        return True, LedgerHealth(
            status=data.get("status", "unknown"),
            chain_id=str(data.get("chainId", "")),
            block_number=int(data.get("blockNumber", 0)),
        )

    # =========================================================================
    # Audit
    # =========================================================================

    def get_audit_log(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get recent audit log entries."""
        with self._audit_lock:
            return self.audit_log[-limit:]

    def clear_audit_log(self):
        with self._audit_lock:
            self.audit_log = []


# =============================================================================
# Mock Ledger Client for Testing
# =============================================================================


@dataclass
class _InjectedFailure:
    error: Exception | str
    remaining: int | None  # None = every call
    match: Callable[[dict[str, Any]], bool] | None = None


class MockLedgerClient(LedgerClient):
    """
    In-memory ledger for tests and local development.

    Failures can be injected per operation:

        ledger.fail_operation("register_derivative", "network timeout", times=2)
        ledger.fail_operation(
            "mint_and_register_ip",
            "execution reverted",
            match=lambda body: "Chapter 3" in body["name"],
        )
    """

    def __init__(self):
        super().__init__(endpoint="http://mock-ledger:8787", verify_ssl=False)

        self._lock = threading.RLock()
        self._token_ids = itertools.count(1)
        self._license_term_ids = itertools.count(1)

        self.license_terms: dict[str, dict[str, Any]] = {}
        self.ip_assets: dict[str, dict[str, Any]] = {}
        self.attachments: dict[str, list[str]] = {}
        self.derivatives: dict[str, dict[str, Any]] = {}
        self.claims: list[dict[str, Any]] = []
        self.royalty_balances: dict[str, int] = {}
        self.active_license_terms: dict[str, LicenseTermsInfo] = {}

        self._failures: dict[str, list[_InjectedFailure]] = {}
        self.call_counts: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def fail_operation(
        self,
        operation: str,
        error: Exception | str,
        times: int | None = None,
        match: Callable[[dict[str, Any]], bool] | None = None,
    ) -> None:
        """
        Make an operation fail.

        Args:
            operation: Operation name, e.g. "register_derivative"
            error: Exception to raise, or gateway error text
            times: Number of failures before succeeding again (None = always)
            match: Only fail calls whose request body satisfies the predicate
        """
        with self._lock:
            self._failures.setdefault(operation, []).append(_InjectedFailure(error, times, match))

    def clear_failures(self) -> None:
        with self._lock:
            self._failures.clear()

    def set_license_terms(self, ip_id: str, info: LicenseTermsInfo) -> None:
        """Make get_license_terms resolve for an IP asset."""
        with self._lock:
            self.active_license_terms[ip_id] = info

    def set_royalty_balance(self, ip_id: str, amount: int) -> None:
        with self._lock:
            self.royalty_balances[ip_id] = amount

    def _check_failure(self, operation: str, body: dict[str, Any]) -> None:
        with self._lock:
            self.call_counts[operation] = self.call_counts.get(operation, 0) + 1
            for failure in self._failures.get(operation, []):
                if failure.match and not failure.match(body):
                    continue
                if failure.remaining is not None:
                    if failure.remaining <= 0:
                        continue
                    failure.remaining -= 1
                error = failure.error
                break
            else:
                return

        if isinstance(error, Exception):
            raise error
        raise LedgerTransactionError(error, operation=operation)

    @staticmethod
    def _tx_hash() -> str:
        return f"0x{secrets.token_hex(32)}"

    # -------------------------------------------------------------------------
    # Transport override
    # -------------------------------------------------------------------------

    def _make_request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> tuple[bool, Any]:
        """Override to use the in-memory ledger instead of HTTP."""
        self._audit(
            {
                "timestamp": datetime.utcnow().isoformat(),
                "method": method,
                "path": path,
                "params": params,
                "mock": True,
            }
        )
        body = body or {}
        parts = path.strip("/").split("/")

        if path == "/license-terms" and method == "POST":
            return self._mock_register_license_terms(body)
        elif path == "/ip-assets" and method == "POST":
            return self._mock_mint_and_register_ip(body)
        elif parts[0] == "ip-assets" and parts[-1] == "license-terms":
            if method == "POST":
                return self._mock_attach_license_terms(parts[1], body)
            return self._mock_get_license_terms(parts[1])
        elif path == "/derivatives" and method == "POST":
            return self._mock_register_derivative(body)
        elif path == "/royalties/claim" and method == "POST":
            return self._mock_claim_royalties(body)

        return False, {"error": f"Unknown path: {path}", "status_code": 404}

    def _mock_register_license_terms(self, body: dict[str, Any]) -> tuple[bool, Any]:
        self._check_failure("register_license_terms", body)
        with self._lock:
            terms_id = str(next(self._license_term_ids))
            self.license_terms[terms_id] = dict(body)
        return True, {"licenseTermsId": terms_id, "txHash": self._tx_hash()}

    def _mock_mint_and_register_ip(self, body: dict[str, Any]) -> tuple[bool, Any]:
        self._check_failure("mint_and_register_ip", body)
        with self._lock:
            ip_id = f"0x{secrets.token_hex(20)}"
            token_id = str(next(self._token_ids))
            self.ip_assets[ip_id] = {"tokenId": token_id, **body}
        return True, {"ipId": ip_id, "tokenId": token_id, "txHash": self._tx_hash()}

    def _mock_attach_license_terms(self, ip_id: str, body: dict[str, Any]) -> tuple[bool, Any]:
        self._check_failure("attach_license_terms", {"ipId": ip_id, **body})
        with self._lock:
            self.attachments.setdefault(ip_id, []).append(str(body.get("licenseTermsId")))
        return True, {"txHash": self._tx_hash()}

    def _mock_get_license_terms(self, ip_id: str) -> tuple[bool, Any]:
        self._check_failure("get_license_terms", {"ipId": ip_id})
        with self._lock:
            info = self.active_license_terms.get(ip_id)
        if info is None:
            return False, {"error": "HTTP 501", "status_code": 501, "message": "Not implemented"}
        return True, info.to_dict()

    def _mock_register_derivative(self, body: dict[str, Any]) -> tuple[bool, Any]:
        self._check_failure("register_derivative", body)
        with self._lock:
            self.derivatives[body["childIpId"]] = dict(body)
        return True, {"txHash": self._tx_hash()}

    def _mock_claim_royalties(self, body: dict[str, Any]) -> tuple[bool, Any]:
        self._check_failure("claim_royalties", body)
        with self._lock:
            claimed = self.royalty_balances.pop(body["ipId"], 0)
            self.claims.append({**body, "claimedAmount": claimed})
        return True, {"txHash": self._tx_hash(), "claimedAmount": claimed}

    def health_check(self) -> tuple[bool, LedgerHealth | dict[str, Any]]:
        return True, LedgerHealth(status="healthy", chain_id="mock", block_number=len(self.ip_assets))
