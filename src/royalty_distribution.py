"""
ChapterIP - Royalty Distribution

Splits revenue among the original creator, the platform, stakers, and
derivative creators.

- calculate_royalty_distribution: Decimal split of derivative revenue
- split_royalty_revenue: integer ledger split that always sums exactly
- RoyaltySharingService: chapter-level sharing, claimable balances, claims
  and per-author claim history

Derivative shares use a pluggable DerivativeSplitStrategy. The default
splits equally with no contribution weighting.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from blockchain_errors import ErrorCode, execute_with_retry_strategy, parse_blockchain_error
from errors import (
    EngineError,
    LedgerError,
    NotFoundError,
    OperationResult,
    PersistenceWarning,
    ValidationError,
)
from ip_records import DerivativeRelationship, IPRecordStore
from ledger_client import LedgerClient
from license_tiers import WEI_PER_TOKEN, LicenseRegistry
from monitoring.metrics import MetricsCollector
from storage import StorageError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

PLATFORM_FEE_PERCENT = 5
PLATFORM_FEE_RATE = Decimal("0.05")

DEFAULT_CHAPTER_TIER = "premium"

# Claimable royalty model (cached usage figures)
REVENUE_PER_READ = Decimal("0.01")
REVENUE_PER_LICENSE = Decimal("10")
TIP_REWARD_PER_READ = Decimal("0.1")
ENGAGEMENT_BONUS_RATE = Decimal("0.02")  # avg reading time above threshold
ENGAGEMENT_THRESHOLD_SECONDS = 600
QUALITY_BONUS_RATE = Decimal("0.01")
QUALITY_BONUS_THRESHOLD = 80

TIP_PER_TOKEN = 1000

CLAIM_COMPLETED = "completed"
CLAIM_FAILED = "failed"
CLAIM_STATUSES = (CLAIM_COMPLETED, CLAIM_FAILED)
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 100


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RoyaltyDistribution:
    """Split of one derivative revenue amount."""

    original_creator: Decimal
    platform: Decimal
    stakers: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalCreator": float(self.original_creator),
            "platform": float(self.platform),
            "stakers": float(self.stakers),
            "total": float(self.total),
        }


@dataclass
class DerivativeShare:
    derivative_ip_id: str
    address: str
    amount: int
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "derivativeId": self.derivative_ip_id,
            "address": self.address,
            "amount": str(self.amount),
            "percentage": self.percentage,
        }


@dataclass
class RoyaltySharingDistribution:
    """Integer split of chapter revenue. Shares always sum to total_revenue."""

    chapter_id: str
    total_revenue: int
    license_tier: str
    creator_address: str
    creator_amount: int
    creator_percentage: int
    platform_amount: int
    platform_percentage: int
    derivatives: list[DerivativeShare] = field(default_factory=list)

    @property
    def total_distributed(self) -> int:
        return self.creator_amount + self.platform_amount + sum(d.amount for d in self.derivatives)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "totalRevenue": str(self.total_revenue),
            "licenseTier": self.license_tier,
            "originalCreator": {
                "address": self.creator_address,
                "amount": str(self.creator_amount),
                "percentage": self.creator_percentage,
            },
            "platform": {
                "amount": str(self.platform_amount),
                "percentage": self.platform_percentage,
            },
            "derivatives": [d.to_dict() for d in self.derivatives],
            "totalDistributed": str(self.total_distributed),
        }


@dataclass
class RoyaltyErrorInfo:
    """Royalty-specific classification of a failed claim."""

    message: str
    retryable: bool
    category: str
    suggested_actions: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "retryable": self.retryable,
            "category": self.category,
            "suggestedActions": list(self.suggested_actions),
        }


@dataclass
class RoyaltySharingResult(OperationResult):
    distribution: RoyaltySharingDistribution | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        if self.distribution:
            result["distribution"] = self.distribution.to_dict()
        return result


@dataclass
class ClaimableRoyalties(OperationResult):
    chapter_id: str = ""
    license_tier: str | None = None
    base_royalties: float = 0.0
    bonus_royalties: float = 0.0
    tip_token_rewards: float = 0.0
    last_updated: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def total_claimable(self) -> float:
        return self.base_royalties + self.bonus_royalties + self.tip_token_rewards

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result.update(
            {
                "chapterId": self.chapter_id,
                "licenseTier": self.license_tier,
                "totalClaimable": self.total_claimable,
                "royaltyBreakdown": {
                    "baseRoyalties": self.base_royalties,
                    "bonusRoyalties": self.bonus_royalties,
                    "tipTokenRewards": self.tip_token_rewards,
                },
                "lastUpdated": self.last_updated,
            }
        )
        return result


@dataclass
class RoyaltyClaimResult(OperationResult):
    chapter_id: str = ""
    amount: int = 0
    transaction_hash: str | None = None
    tip_token_amount: float = 0.0
    platform_fee: float = 0.0
    license_tier: str | None = None
    error_info: RoyaltyErrorInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result["chapterId"] = self.chapter_id
        if self.success:
            result.update(
                {
                    "amount": str(self.amount),
                    "transactionHash": self.transaction_hash,
                    "tipTokenAmount": self.tip_token_amount,
                    "platformFee": self.platform_fee,
                    "licenseTier": self.license_tier,
                }
            )
        if self.error_info:
            result["errorInfo"] = self.error_info.to_dict()
        return result


@dataclass
class RoyaltyHistoryEntry:
    """One claim attempt that reached the ledger."""

    chapter_id: str
    author_address: str
    status: str  # completed | failed
    amount: int = 0
    tip_token_amount: float = 0.0
    platform_fee: float = 0.0
    license_tier: str | None = None
    transaction_hash: str | None = None
    error: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chapterId": self.chapter_id,
            "authorAddress": self.author_address,
            "status": self.status,
            "amount": str(self.amount),
            "tipTokenAmount": self.tip_token_amount,
            "platformFee": self.platform_fee,
            "licenseTier": self.license_tier,
            "transactionHash": self.transaction_hash,
            "error": self.error,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoyaltyHistoryEntry":
        return cls(
            chapter_id=data.get("chapterId", ""),
            author_address=data.get("authorAddress", ""),
            status=data.get("status", "failed"),
            amount=int(data.get("amount", 0)),
            tip_token_amount=data.get("tipTokenAmount", 0.0),
            platform_fee=data.get("platformFee", 0.0),
            license_tier=data.get("licenseTier"),
            transaction_hash=data.get("transactionHash"),
            error=data.get("error"),
            id=data.get("id", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class RoyaltyStatistics:
    total_claimed: int = 0
    total_fees_paid: float = 0.0
    claim_count: int = 0
    attempt_count: int = 0
    success_rate: float = 0.0
    average_claim_amount: int = 0
    last_claim_date: str | None = None

    @classmethod
    def from_entries(cls, entries: list[RoyaltyHistoryEntry]) -> "RoyaltyStatistics":
        completed = [e for e in entries if e.status == CLAIM_COMPLETED]
        total_claimed = sum(e.amount for e in completed)
        claim_count = len(completed)
        return cls(
            total_claimed=total_claimed,
            total_fees_paid=sum(e.platform_fee for e in completed),
            claim_count=claim_count,
            attempt_count=len(entries),
            success_rate=round(claim_count / len(entries) * 100, 2) if entries else 0.0,
            average_claim_amount=total_claimed // claim_count if claim_count else 0,
            last_claim_date=max((e.timestamp for e in completed), default=None),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalClaimed": str(self.total_claimed),
            "totalFeesPaid": self.total_fees_paid,
            "claimCount": self.claim_count,
            "attemptCount": self.attempt_count,
            "successRate": self.success_rate,
            "averageClaimAmount": str(self.average_claim_amount),
            "lastClaimDate": self.last_claim_date,
        }


@dataclass
class RoyaltyHistoryResult(OperationResult):
    author_address: str = ""
    entries: list[RoyaltyHistoryEntry] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_HISTORY_LIMIT
    total: int = 0
    summary: RoyaltyStatistics | None = None

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result["authorAddress"] = self.author_address
        if self.success:
            result.update(
                {
                    "entries": [e.to_dict() for e in self.entries],
                    "pagination": {
                        "page": self.page,
                        "limit": self.limit,
                        "total": self.total,
                        "hasMore": self.has_more,
                    },
                    "summary": self.summary.to_dict() if self.summary else None,
                }
            )
        return result


# =============================================================================
# Split Strategies
# =============================================================================


class DerivativeSplitStrategy(ABC):
    """Divides the derivative pool among a chapter's derivatives."""

    name = "custom"

    @abstractmethod
    def split(self, amount: int, derivatives: list[DerivativeRelationship]) -> list[int]:
        """
        Split an integer amount.

        Returns:
            One share per derivative, in input order, summing to amount
        """
        pass


class EqualSplitStrategy(DerivativeSplitStrategy):
    """
    Equal shares regardless of contribution.

    Leftover units go one each to the earliest-registered derivatives.
    """

    name = "equal"

    def split(self, amount: int, derivatives: list[DerivativeRelationship]) -> list[int]:
        if not derivatives:
            return []

        count = len(derivatives)
        base, remainder = divmod(amount, count)
        order = sorted(range(count), key=lambda i: derivatives[i].registration_time)

        shares = [base] * count
        for i in order[:remainder]:
            shares[i] += 1
        return shares


# =============================================================================
# Calculators
# =============================================================================


def calculate_royalty_distribution(
    tier_name: str, derivative_revenue: float | Decimal, registry: LicenseRegistry
) -> RoyaltyDistribution:
    """
    Expected split of a derivative's revenue under a parent tier.

    Raises:
        InvalidTierError: If the tier is unknown
        ValidationError: If revenue is negative
    """
    tier = registry.get_tier(tier_name)
    policy = registry.get_policy(tier_name)

    revenue = Decimal(str(derivative_revenue))
    if revenue < 0:
        raise ValidationError("Derivative revenue cannot be negative")

    royalty_to_creator = revenue * tier.royalty_percentage / 100
    platform_fee = revenue * PLATFORM_FEE_RATE
    staking_rewards = royalty_to_creator * policy.staking_reward / 100

    return RoyaltyDistribution(
        original_creator=royalty_to_creator - staking_rewards,
        platform=platform_fee,
        stakers=staking_rewards,
        total=royalty_to_creator + platform_fee,
    )


def split_royalty_revenue(
    chapter_id: str,
    total_revenue: int,
    tier_name: str,
    creator_address: str,
    derivatives: list[DerivativeRelationship],
    registry: LicenseRegistry,
    strategy: DerivativeSplitStrategy | None = None,
) -> RoyaltySharingDistribution:
    """
    Integer split of chapter revenue.

    Platform takes 5%, the creator the tier's royalty percentage, and the
    remainder goes to the derivatives. With no derivatives the remainder
    stays with the creator.

    Raises:
        InvalidTierError: If the tier is unknown
        ValidationError: If revenue is negative
    """
    if total_revenue < 0:
        raise ValidationError("Total revenue cannot be negative")

    tier = registry.get_tier(tier_name)
    strategy = strategy or EqualSplitStrategy()

    platform_amount = total_revenue * PLATFORM_FEE_PERCENT // 100
    creator_amount = total_revenue * tier.royalty_percentage // 100
    remaining = total_revenue - platform_amount - creator_amount

    shares = []
    if derivatives:
        amounts = strategy.split(remaining, derivatives)
        if len(amounts) != len(derivatives) or sum(amounts) != remaining:
            raise EngineError(f"Split strategy '{strategy.name}' did not distribute the full pool")
        shares = [
            DerivativeShare(
                derivative_ip_id=d.ip_id,
                address=d.creator_address,
                amount=amount,
                percentage=(amount / total_revenue * 100) if total_revenue else 0.0,
            )
            for d, amount in zip(derivatives, amounts)
        ]
    else:
        creator_amount += remaining

    return RoyaltySharingDistribution(
        chapter_id=chapter_id,
        total_revenue=total_revenue,
        license_tier=tier_name,
        creator_address=creator_address,
        creator_amount=creator_amount,
        creator_percentage=tier.royalty_percentage,
        platform_amount=platform_amount,
        platform_percentage=PLATFORM_FEE_PERCENT,
        derivatives=shares,
    )


def categorize_royalty_error(error: Exception) -> RoyaltyErrorInfo:
    """Map a claim failure to a royalty error category with suggested actions."""
    parsed = parse_blockchain_error(error)
    text = str(error).lower()

    if "wallet" in text or "account" in text:
        return RoyaltyErrorInfo(
            message="Wallet client not configured for royalty claiming operations",
            retryable=True,
            category="wallet_error",
            suggested_actions=[
                "Configure the server-side wallet for ledger operations",
                "Verify wallet has sufficient funds for gas fees",
                "Check wallet permissions for royalty claiming",
            ],
        )
    if "network" in text or "rpc" in text or parsed.code == ErrorCode.NETWORK_ERROR:
        return RoyaltyErrorInfo(
            message="Network connectivity issues preventing royalty claiming",
            retryable=True,
            category="network_error",
            suggested_actions=[
                "Check ledger gateway connectivity",
                "Verify network configuration",
                "Retry operation after network stabilizes",
            ],
        )
    if "gas" in text or "fee" in text or parsed.code == ErrorCode.INSUFFICIENT_FUNDS:
        return RoyaltyErrorInfo(
            message="Insufficient gas or gas estimation failed for royalty claiming",
            retryable=True,
            category="gas_error",
            suggested_actions=[
                "Increase gas limit for complex royalty operations",
                "Check account balance for transaction fees",
                "Use gas estimation for optimal fee calculation",
            ],
        )
    if "royalty" in text or "claim" in text or "revenue" in text:
        return RoyaltyErrorInfo(
            message="Royalty claiming operation failed - insufficient royalties or invalid operation",
            retryable=False,
            category="royalty_error",
            suggested_actions=[
                "Verify royalties are available to claim",
                "Check chapter has generated revenue",
                "Confirm IP asset registration is complete",
            ],
        )
    if "unauthorized" in text or "permission" in text:
        return RoyaltyErrorInfo(
            message="Insufficient permissions for royalty claiming",
            retryable=False,
            category="royalty_error",
            suggested_actions=[
                "Verify ownership of chapter IP asset",
                "Check royalty claiming permissions",
                "Ensure wallet has operator permissions",
            ],
        )

    return RoyaltyErrorInfo(
        message=parsed.message,
        retryable=parsed.can_retry,
        category="unknown_error",
        suggested_actions=[
            "Check logs for detailed error information",
            "Contact support with error details",
            "Try operation again after a few minutes",
        ],
    )


# =============================================================================
# Service
# =============================================================================


class RoyaltySharingService:
    """
    Chapter-level royalty operations over the record store and ledger.

    Usage:
        service = RoyaltySharingService(records, registry, ledger)
        result = service.calculate_royalty_sharing("chapter-1", 10**18)
    """

    def __init__(
        self,
        records: IPRecordStore,
        registry: LicenseRegistry,
        ledger: LedgerClient,
        split_strategy: DerivativeSplitStrategy | None = None,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.records = records
        self.registry = registry
        self.ledger = ledger
        self.split_strategy = split_strategy or EqualSplitStrategy()
        self.metrics = metrics or MetricsCollector()
        self.sleep = sleep

    def _load_chapter(self, chapter_id: str) -> dict[str, Any]:
        chapter = self.records.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(f"Chapter metadata not found: {chapter_id}", {"chapterId": chapter_id})
        return chapter

    def calculate_royalty_sharing(self, chapter_id: str, total_revenue: int) -> RoyaltySharingResult:
        """Split a chapter's revenue among creator, platform, and derivatives."""
        try:
            chapter = self._load_chapter(chapter_id)
            tier_name = chapter.get("licenseTier") or DEFAULT_CHAPTER_TIER
            derivatives = self.records.list_chapter_derivatives(chapter_id)

            distribution = split_royalty_revenue(
                chapter_id=chapter_id,
                total_revenue=int(total_revenue),
                tier_name=tier_name,
                creator_address=chapter.get("authorAddress", ""),
                derivatives=derivatives,
                registry=self.registry,
                strategy=self.split_strategy,
            )
        except EngineError as e:
            logger.info("Royalty sharing for %s failed: %s", chapter_id, e.message)
            return RoyaltySharingResult.failure(e)
        except StorageError as e:
            logger.error("Royalty sharing for %s could not read records: %s", chapter_id, e)
            return RoyaltySharingResult(success=False, error=str(e), error_kind="storage")

        logger.info(
            "Royalty sharing for %s: creator=%d platform=%d derivatives=%d",
            chapter_id,
            distribution.creator_amount,
            distribution.platform_amount,
            len(distribution.derivatives),
        )
        return RoyaltySharingResult(success=True, distribution=distribution)

    def get_claimable_royalties(self, chapter_id: str) -> ClaimableRoyalties:
        """
        Claimable royalties from the chapter's cached usage figures.

        Usage keys: totalReads, totalLicenses, averageReadingTime.
        """
        try:
            chapter = self._load_chapter(chapter_id)
            tier_name = chapter.get("licenseTier") or DEFAULT_CHAPTER_TIER
            tier = self.registry.get_tier(tier_name)
        except EngineError as e:
            return ClaimableRoyalties.failure(e, chapter_id=chapter_id)
        except StorageError as e:
            return ClaimableRoyalties(success=False, error=str(e), error_kind="storage", chapter_id=chapter_id)

        usage = chapter.get("usage") or {}
        reads = Decimal(str(usage.get("totalReads", 0)))
        licenses = Decimal(str(usage.get("totalLicenses", 0)))
        avg_reading_time = usage.get("averageReadingTime", 0)

        revenue = reads * REVENUE_PER_READ + licenses * REVENUE_PER_LICENSE
        base_royalties = revenue * tier.royalty_percentage / 100

        bonus_rate = Decimal("0")
        if avg_reading_time > ENGAGEMENT_THRESHOLD_SECONDS:
            bonus_rate += ENGAGEMENT_BONUS_RATE
        if chapter.get("qualityScore", 0) > QUALITY_BONUS_THRESHOLD:
            bonus_rate += QUALITY_BONUS_RATE

        return ClaimableRoyalties(
            success=True,
            chapter_id=chapter_id,
            license_tier=tier_name,
            base_royalties=float(base_royalties),
            bonus_royalties=float(revenue * bonus_rate),
            tip_token_rewards=float(reads * TIP_REWARD_PER_READ),
        )

    def claim_chapter_royalties(
        self, chapter_id: str, author_address: str, currency_tokens: list[str] | None = None
    ) -> RoyaltyClaimResult:
        """
        Claim a chapter's royalties through the ledger.

        Retries per the ledger error strategy. On final failure the result
        carries a royalty-specific error category.
        """
        if not author_address:
            return RoyaltyClaimResult.failure(
                ValidationError("Author address is required"), chapter_id=chapter_id
            )

        try:
            chapter = self._load_chapter(chapter_id)
        except EngineError as e:
            return RoyaltyClaimResult.failure(e, chapter_id=chapter_id)
        except StorageError as e:
            return RoyaltyClaimResult(success=False, error=str(e), error_kind="storage", chapter_id=chapter_id)

        ip_asset_id = chapter.get("ipAssetId")
        if not ip_asset_id:
            return RoyaltyClaimResult.failure(
                NotFoundError("Chapter IP asset not found or not registered"), chapter_id=chapter_id
            )

        claimable = self.get_claimable_royalties(chapter_id)
        if not claimable.success:
            return RoyaltyClaimResult(
                success=False,
                error=claimable.error,
                error_kind=claimable.error_kind,
                chapter_id=chapter_id,
            )
        if claimable.total_claimable <= 0:
            return RoyaltyClaimResult.failure(
                ValidationError("No royalties available to claim for this chapter"), chapter_id=chapter_id
            )

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.metrics.increment("ledger_retries_total", labels={"operation": "claim_royalties"})

        try:
            receipt = execute_with_retry_strategy(
                lambda: self.ledger.claim_royalties(ip_asset_id, author_address, currency_tokens),
                sleep=self.sleep,
                on_retry=on_retry,
            )
        except Exception as e:
            ledger_error = LedgerError.from_exception(e)
            error_info = categorize_royalty_error(e)
            logger.error("Royalty claim for %s failed: %s", chapter_id, ledger_error.message)
            self.metrics.increment("royalty_claims_total", labels={"outcome": "failure"})
            warnings = []
            self._record_claim(
                RoyaltyHistoryEntry(
                    chapter_id=chapter_id,
                    author_address=author_address,
                    status=CLAIM_FAILED,
                    license_tier=claimable.license_tier,
                    error=ledger_error.message,
                ),
                warnings,
            )
            return RoyaltyClaimResult(
                success=False,
                error=ledger_error.message,
                error_kind=ledger_error.kind,
                chapter_id=chapter_id,
                error_info=error_info,
                warnings=warnings,
            )

        amount = receipt.claimed_amount
        if amount <= 0:
            amount = int(Decimal(str(claimable.total_claimable)) * WEI_PER_TOKEN)

        tip_token_amount = float(Decimal(amount) / WEI_PER_TOKEN * TIP_PER_TOKEN)
        platform_fee = tip_token_amount * PLATFORM_FEE_PERCENT / 100

        warnings = []
        last_claim = {
            "transactionHash": receipt.tx_hash,
            "amount": str(amount),
            "claimedAt": datetime.utcnow().isoformat(),
        }
        try:
            self.records.merge_chapter(chapter_id, {"lastClaim": last_claim})
        except StorageError as e:
            warning = PersistenceWarning(f"chapters/{chapter_id}.json", e)
            logger.warning(warning.message)
            self.metrics.increment("persistence_warnings_total")
            warnings.append(warning.message)

        self._record_claim(
            RoyaltyHistoryEntry(
                chapter_id=chapter_id,
                author_address=author_address,
                status=CLAIM_COMPLETED,
                amount=amount,
                tip_token_amount=tip_token_amount,
                platform_fee=platform_fee,
                license_tier=claimable.license_tier,
                transaction_hash=receipt.tx_hash,
            ),
            warnings,
        )

        self.metrics.increment("royalty_claims_total", labels={"outcome": "success"})
        logger.info("Claimed royalties for %s: tx=%s", chapter_id, receipt.tx_hash)

        return RoyaltyClaimResult(
            success=True,
            chapter_id=chapter_id,
            amount=amount,
            transaction_hash=receipt.tx_hash,
            tip_token_amount=tip_token_amount,
            platform_fee=platform_fee,
            license_tier=claimable.license_tier,
            warnings=warnings,
        )

    # =========================================================================
    # History
    # =========================================================================

    def _record_claim(self, entry: RoyaltyHistoryEntry, warnings: list[str]) -> None:
        try:
            self.records.append_royalty_history(entry.author_address, entry.to_dict())
        except StorageError as e:
            warning = PersistenceWarning(f"royalties/history/{entry.author_address.lower()}.json", e)
            logger.warning(warning.message)
            self.metrics.increment("persistence_warnings_total")
            warnings.append(warning.message)

    def _load_history(self, author_address: str) -> list[RoyaltyHistoryEntry]:
        entries = [RoyaltyHistoryEntry.from_dict(d) for d in self.records.get_royalty_history(author_address)]
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)

    def get_royalty_history(
        self,
        author_address: str,
        page: int = 1,
        limit: int = DEFAULT_HISTORY_LIMIT,
        status: str | None = None,
        chapter_id: str | None = None,
    ) -> RoyaltyHistoryResult:
        """
        An author's claim attempts, newest first, one page at a time.

        Filters narrow the page; the summary always covers every attempt.
        """
        if not author_address:
            return RoyaltyHistoryResult.failure(ValidationError("Author address is required"))
        if page < 1:
            return RoyaltyHistoryResult.failure(
                ValidationError("page must be a positive integer"), author_address=author_address
            )
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            return RoyaltyHistoryResult.failure(
                ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}"),
                author_address=author_address,
            )
        if status is not None and status not in CLAIM_STATUSES:
            return RoyaltyHistoryResult.failure(
                ValidationError(f"Unknown claim status: {status}"), author_address=author_address
            )

        try:
            entries = self._load_history(author_address)
        except StorageError as e:
            return RoyaltyHistoryResult(
                success=False, error=str(e), error_kind="storage", author_address=author_address
            )

        filtered = [
            e
            for e in entries
            if (status is None or e.status == status) and (chapter_id is None or e.chapter_id == chapter_id)
        ]
        start = (page - 1) * limit
        return RoyaltyHistoryResult(
            success=True,
            author_address=author_address,
            entries=filtered[start : start + limit],
            page=page,
            limit=limit,
            total=len(filtered),
            summary=RoyaltyStatistics.from_entries(entries),
        )

    def get_royalty_statistics(self, author_address: str) -> RoyaltyStatistics:
        """
        Totals over an author's completed claims.

        Raises:
            StorageError: If the history could not be read
        """
        return RoyaltyStatistics.from_entries(self._load_history(author_address))
