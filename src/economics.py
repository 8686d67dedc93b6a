"""
ChapterIP - TIP Token Economics Calculator

Pure functions that turn a license tier and a chapter's quality signals
into prices, rewards, and revenue projections.

- calculate_chapter_economics: unlock price, read reward, license price
- calculate_optimal_pricing: tier suggestion plus revenue projections
- calculate_revenue_distribution: derivative revenue split with breakdown
- calculate_staking_rewards: policy-driven staking yield
- calculate_revenue_breakdown: integer split incl. reader rewards
"""

import math
from dataclasses import dataclass, field
from typing import Any

from errors import ValidationError
from license_tiers import LicenseRegistry

# =============================================================================
# Constants
# =============================================================================

PLATFORM_FEE_PERCENT = 5
CREATOR_READ_SHARE = 0.8  # Creator keeps 80% of each read reward
STREAK_BONUS = 10
VOLUME_DISCOUNT = 15

# Percentage of revenue routed to readers, per tier
READER_REWARD_RATES = {"free": 2, "premium": 3, "exclusive": 5}

TARGET_AUDIENCES = ("mass", "premium", "exclusive")
BASE_READS = {"mass": 1000, "premium": 100, "exclusive": 10}

# Staking bonus multipliers by minimum duration (days), longest first
STAKING_BONUS_TIERS = ((365, 1.5), (90, 1.2))

# Gas estimates for royalty operations
ROYALTY_GAS_ESTIMATES = {"claim": 150_000, "distribute": 200_000, "stake": 100_000}
ETH_GAS_PRICE = 0.00002  # ~20 gwei
TIP_TO_ETH_RATE = 0.001

TIP_TO_USD_RATE = 0.10
TIP_GAS_ESTIMATES = {"unlock": 50_000, "read": 30_000, "license": 100_000, "royalty": 75_000}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ChapterMetadata:
    """Quality and commercial signals attached to a chapter."""

    quality_score: float = 50
    originality_score: float = 50
    commercial_viability: float = 50
    commercial_rights: bool = False
    unlock_price: float = 0
    read_reward: float = 1
    author_address: str = ""
    author_name: str = ""
    genre: str = ""
    content_rating: str = "PG"
    language: str = "en"
    word_count: int = 0
    estimated_reading_time: int = 0
    preferred_license_tier: str = "premium"
    allow_derivatives: bool = True
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "qualityScore": self.quality_score,
            "originalityScore": self.originality_score,
            "commercialViability": self.commercial_viability,
            "commercialRights": self.commercial_rights,
            "unlockPrice": self.unlock_price,
            "readReward": self.read_reward,
            "authorAddress": self.author_address,
            "authorName": self.author_name,
            "genre": self.genre,
            "contentRating": self.content_rating,
            "language": self.language,
            "wordCount": self.word_count,
            "estimatedReadingTime": self.estimated_reading_time,
            "preferredLicenseTier": self.preferred_license_tier,
            "allowDerivatives": self.allow_derivatives,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChapterMetadata":
        return cls(
            quality_score=data.get("qualityScore", 50),
            originality_score=data.get("originalityScore", 50),
            commercial_viability=data.get("commercialViability", 50),
            commercial_rights=bool(data.get("commercialRights", False)),
            unlock_price=data.get("unlockPrice", 0),
            read_reward=data.get("readReward", 1),
            author_address=data.get("authorAddress", ""),
            author_name=data.get("authorName", ""),
            genre=data.get("genre", data.get("suggestedGenre", "")),
            content_rating=data.get("contentRating", "PG"),
            language=data.get("language", "en"),
            word_count=data.get("wordCount", 0),
            estimated_reading_time=data.get("estimatedReadingTime", 0),
            preferred_license_tier=data.get("preferredLicenseTier", "premium"),
            allow_derivatives=bool(data.get("allowDerivatives", True)),
            tags=list(data.get("tags", data.get("suggestedTags", []))),
        )


@dataclass
class ChapterContent:
    """A chapter submitted for registration or pricing."""

    story_id: str
    chapter_number: int
    title: str
    content: str = ""
    content_url: str = ""
    metadata: ChapterMetadata = field(default_factory=ChapterMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyId": self.story_id,
            "chapterNumber": self.chapter_number,
            "title": self.title,
            "content": self.content,
            "contentUrl": self.content_url,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChapterContent":
        if not isinstance(data, dict):
            raise ValidationError("Chapter content must be an object")
        return cls(
            story_id=str(data.get("storyId", "")),
            chapter_number=int(data.get("chapterNumber", 0)),
            title=data.get("title", ""),
            content=data.get("content", ""),
            content_url=data.get("contentUrl", ""),
            metadata=ChapterMetadata.from_dict(data.get("metadata") or {}),
        )


@dataclass
class TIPTokenEconomics:
    """Pricing and reward figures for one chapter under one tier."""

    unlock_price: int
    read_reward: int
    creator_reward: int
    license_price: int
    royalty_percentage: int
    platform_fee: int
    staking_reward: int
    quality_bonus: int
    streak_bonus: int = STREAK_BONUS
    volume_discount: int = VOLUME_DISCOUNT

    def to_dict(self) -> dict[str, Any]:
        return {
            "unlockPrice": self.unlock_price,
            "readReward": self.read_reward,
            "creatorReward": self.creator_reward,
            "licensePrice": self.license_price,
            "royaltyPercentage": self.royalty_percentage,
            "platformFee": self.platform_fee,
            "stakingReward": self.staking_reward,
            "qualityBonus": self.quality_bonus,
            "streakBonus": self.streak_bonus,
            "volumeDiscount": self.volume_discount,
        }


@dataclass
class PricingSuggestion:
    """Outcome of calculate_optimal_pricing."""

    suggested_tier: str
    suggested_pricing: TIPTokenEconomics
    reasoning: list[str]
    projected_revenue: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestedTier": self.suggested_tier,
            "suggestedPricing": self.suggested_pricing.to_dict(),
            "reasoning": list(self.reasoning),
            "projectedRevenue": dict(self.projected_revenue),
        }


# =============================================================================
# Calculators
# =============================================================================


def calculate_chapter_economics(
    content: ChapterContent, tier_name: str, registry: LicenseRegistry
) -> TIPTokenEconomics:
    """
    Calculate the complete economics for a chapter under a tier.

    Raises:
        InvalidTierError: If the tier is unknown
    """
    tier = registry.get_tier(tier_name)
    meta = content.metadata

    base_unlock_price = meta.unlock_price or 0
    base_read_reward = meta.read_reward or 1

    quality_multiplier = 1 + meta.quality_score / 100
    originality_multiplier = 1 + meta.originality_score / 200  # Half weight
    commercial_multiplier = 1.5 if meta.commercial_rights else 1

    read_reward = math.floor(base_read_reward * quality_multiplier * originality_multiplier)

    return TIPTokenEconomics(
        unlock_price=math.floor(base_unlock_price * quality_multiplier),
        read_reward=read_reward,
        creator_reward=math.floor(read_reward * CREATOR_READ_SHARE),
        license_price=math.floor(tier.tip_price * quality_multiplier * commercial_multiplier),
        royalty_percentage=tier.royalty_percentage,
        platform_fee=PLATFORM_FEE_PERCENT,
        staking_reward=tier.royalty_policy.staking_reward,
        # Negative below 50% quality
        quality_bonus=math.floor((meta.quality_score - 50) / 2),
    )


def calculate_optimal_pricing(
    content: ChapterContent, target_audience: str, registry: LicenseRegistry
) -> PricingSuggestion:
    """
    Suggest a tier for a chapter and project its revenue.

    Args:
        content: Chapter with quality signals
        target_audience: "mass", "premium", or "exclusive"
        registry: Tier catalog

    Returns:
        PricingSuggestion with reasoning and conservative/optimistic/aggressive projections
    """
    if target_audience not in TARGET_AUDIENCES:
        raise ValidationError(
            f"Invalid target audience: {target_audience}",
            {"allowed": list(TARGET_AUDIENCES)},
        )

    meta = content.metadata
    reasoning = []

    has_high_quality = meta.quality_score >= 75
    has_high_originality = meta.originality_score >= 70
    has_commercial_viability = meta.commercial_viability >= 60

    if has_high_quality and has_high_originality and has_commercial_viability and meta.commercial_rights:
        if target_audience == "exclusive" or meta.quality_score >= 90:
            suggested_tier = "exclusive"
            reasoning.append("Exceptional quality and originality justify exclusive pricing")
        else:
            suggested_tier = "premium"
            reasoning.append("High quality content suitable for commercial licensing")
    elif has_high_quality or has_commercial_viability:
        suggested_tier = "premium"
        reasoning.append("Good quality or commercial potential supports premium tier")
    else:
        suggested_tier = "free"
        reasoning.append("Content best suited for free tier to maximize reach")

    if target_audience == "mass" and suggested_tier != "free":
        reasoning.append(f"Adjusted from {suggested_tier} to free for mass market appeal")
        suggested_tier = "free"

    pricing = calculate_chapter_economics(content, suggested_tier, registry)

    base_reads = BASE_READS[target_audience]
    quality_multiplier = 1 + meta.quality_score / 100
    projected = {
        name: math.floor(base_reads * factor * quality_multiplier * pricing.read_reward)
        for name, factor in (("conservative", 0.5), ("optimistic", 1), ("aggressive", 2))
    }

    return PricingSuggestion(
        suggested_tier=suggested_tier,
        suggested_pricing=pricing,
        reasoning=reasoning,
        projected_revenue=projected,
    )


def calculate_revenue_distribution(
    economics: TIPTokenEconomics,
    derivative_revenue: float,
    tier_name: str,
    registry: LicenseRegistry,
) -> dict[str, Any]:
    """Split derivative revenue between both creators, platform, and stakers."""
    policy = registry.get_policy(tier_name)

    base_royalty = derivative_revenue * economics.royalty_percentage / 100
    platform_fee = derivative_revenue * economics.platform_fee / 100
    staking_bonus = base_royalty * policy.staking_reward / 100

    original_creator = base_royalty - staking_bonus
    derivative_creator = derivative_revenue - base_royalty - platform_fee

    return {
        "originalCreator": original_creator,
        "derivativeCreator": derivative_creator,
        "platform": platform_fee,
        "stakers": staking_bonus,
        "total": derivative_revenue,
        "breakdown": {
            "baseRoyalty": base_royalty,
            "stakingBonus": staking_bonus,
            "platformFee": platform_fee,
            "creatorShare": derivative_creator,
        },
    }


def calculate_staking_rewards(
    staked_amount: float,
    staking_days: int,
    tier_name: str,
    registry: LicenseRegistry,
    total_staked: float = 0,
) -> dict[str, float]:
    """
    Calculate staking rewards under a tier's royalty policy.

    Raises:
        ValidationError: On non-positive inputs or stake above the policy ceiling
    """
    policy = registry.get_policy(tier_name)

    if staked_amount <= 0:
        raise ValidationError("Staked amount must be positive")
    if staking_days <= 0:
        raise ValidationError("Staking duration must be positive")
    if policy.max_staking_threshold and total_staked + staked_amount > policy.max_staking_threshold:
        raise ValidationError(
            "Stake exceeds the policy's maximum staking threshold",
            {"maxStakingThreshold": str(policy.max_staking_threshold)},
        )

    daily_rate = policy.staking_reward / 100 / 365
    base_reward = staked_amount * daily_rate * staking_days

    bonus_multiplier = 1.0
    for min_days, multiplier in STAKING_BONUS_TIERS:
        if staking_days >= min_days:
            bonus_multiplier = multiplier
            break

    bonus_reward = base_reward * (bonus_multiplier - 1)
    total_reward = base_reward + bonus_reward
    apy = (total_reward / staked_amount) * (365 / staking_days) * 100

    return {
        "baseReward": base_reward,
        "bonusReward": bonus_reward,
        "totalReward": total_reward,
        "apy": apy,
    }


def calculate_revenue_breakdown(
    total_revenue: int, tier_name: str, registry: LicenseRegistry
) -> dict[str, Any]:
    """Integer split of revenue into creator, platform, readers, and remainder."""
    if total_revenue < 0:
        raise ValidationError("Total revenue cannot be negative")

    tier = registry.get_tier(tier_name)
    royalty_rate = tier.royalty_percentage
    reader_rate = READER_REWARD_RATES.get(tier_name, 0)

    creator_royalty = total_revenue * royalty_rate // 100
    platform_fee = total_revenue * PLATFORM_FEE_PERCENT // 100
    reader_rewards = total_revenue * reader_rate // 100

    return {
        "totalRevenue": total_revenue,
        "creatorRoyalty": creator_royalty,
        "platformFee": platform_fee,
        "readerRewards": reader_rewards,
        "remainingAmount": total_revenue - creator_royalty - platform_fee - reader_rewards,
        "breakdown": {
            "creator": royalty_rate,
            "platform": PLATFORM_FEE_PERCENT,
            "readers": reader_rate,
            "remaining": 100 - royalty_rate - PLATFORM_FEE_PERCENT - reader_rate,
        },
    }


def estimate_royalty_gas_costs(operation: str) -> dict[str, Any]:
    """Rough gas cost estimate for a royalty operation."""
    estimated_gas = ROYALTY_GAS_ESTIMATES.get(operation, ROYALTY_GAS_ESTIMATES["claim"])
    cost_eth = estimated_gas * ETH_GAS_PRICE
    return {
        "estimatedGas": estimated_gas,
        "estimatedCostInETH": cost_eth,
        "estimatedCostInTIP": cost_eth / TIP_TO_ETH_RATE,
    }


def calculate_tip_token_value(amount: float, operation: str) -> dict[str, Any]:
    return {
        "tipAmount": amount,
        "usdEquivalent": amount * TIP_TO_USD_RATE,
        "gasEstimate": TIP_GAS_ESTIMATES.get(operation, TIP_GAS_ESTIMATES["unlock"]),
    }
