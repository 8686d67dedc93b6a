"""
ChapterIP - License Tier & Royalty Policy Registry

Catalog of the named license tiers a chapter can be published under and
the royalty policy bound to each one.

Tiers:
- free: non-commercial, share-alike, no royalty
- premium: commercial use, 10% royalty, staking-augmented policy
- exclusive: commercial use, 25% royalty, non-transferable

Policies:
- LAP: flat percentage, paid immediately
- LRP: staking-augmented, paid after a distribution delay

The registry is a frozen value. Environment overrides of the policy
addresses produce a new registry; nothing mutates after construction.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from errors import InvalidTierError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Smallest currency unit per whole token
WEI_PER_TOKEN = 10**18

KNOWN_TIERS = ("free", "premium", "exclusive")

# Environment variables that rewire policy addresses (first non-empty wins)
LAP_POLICY_ENV_VARS = ("STORY_LAP_ROYALTY_POLICY", "NEXT_PUBLIC_STORY_LAP_ROYALTY_POLICY")
LRP_POLICY_ENV_VARS = ("STORY_LRP_ROYALTY_POLICY", "NEXT_PUBLIC_STORY_LRP_ROYALTY_POLICY")

PLACEHOLDER_ADDRESSES = {"0x_your_lap_policy_address", "0x_your_lrp_policy_address"}


# =============================================================================
# Enums
# =============================================================================


class PolicyType(Enum):
    """Royalty policy kinds."""

    LAP = "LAP"  # Liquid Absolute Percentage: flat, immediate
    LRP = "LRP"  # Liquid Relative Percentage: staking-augmented, delayed


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RoyaltyPolicy:
    """Staking and distribution parameters bound to a tier."""

    address: str
    policy_type: PolicyType
    staking_reward: int  # Percentage of the creator's royalty
    distribution_delay: int  # Seconds
    max_staking_threshold: int  # Smallest currency unit

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "address": self.address,
            "policyType": self.policy_type.value,
            "stakingReward": self.staking_reward,
            "distributionDelay": self.distribution_delay,
            "maxStakingThreshold": str(self.max_staking_threshold),
        }


@dataclass(frozen=True)
class LicenseTier:
    """A named bundle of license terms, pricing, and royalty policy."""

    tier: str
    display_name: str
    transferable: bool
    commercial_use: bool
    commercial_attribution: bool
    derivatives_allowed: bool
    derivatives_attribution: bool
    default_minting_fee: int
    tip_price: float
    royalty_percentage: int
    royalty_policy: RoyaltyPolicy
    territories: tuple[str, ...] = ("Worldwide",)
    distribution_channels: tuple[str, ...] = ("Digital",)
    content_restrictions: tuple[str, ...] = ()
    exclusivity: bool = False
    share_alike: bool = False
    attribution: bool = True
    expiration: int = 0  # 0 = never expires

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tier": self.tier,
            "displayName": self.display_name,
            "transferable": self.transferable,
            "commercialUse": self.commercial_use,
            "commercialAttribution": self.commercial_attribution,
            "derivativesAllowed": self.derivatives_allowed,
            "derivativesAttribution": self.derivatives_attribution,
            "defaultMintingFee": str(self.default_minting_fee),
            "tipPrice": self.tip_price,
            "royaltyPercentage": self.royalty_percentage,
            "royaltyPolicy": self.royalty_policy.to_dict(),
            "territories": list(self.territories),
            "distributionChannels": list(self.distribution_channels),
            "contentRestrictions": list(self.content_restrictions),
            "exclusivity": self.exclusivity,
            "shareAlike": self.share_alike,
            "attribution": self.attribution,
            "expiration": self.expiration,
        }


@dataclass
class TierValidation:
    """Outcome of validating a tier definition."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


# =============================================================================
# Defaults
# =============================================================================


def default_royalty_policies() -> dict[str, RoyaltyPolicy]:
    """Policies bound to each tier before any environment override."""
    return {
        "free": RoyaltyPolicy(
            address=ZERO_ADDRESS,
            policy_type=PolicyType.LAP,
            staking_reward=0,
            distribution_delay=0,
            max_staking_threshold=0,
        ),
        "premium": RoyaltyPolicy(
            address=ZERO_ADDRESS,
            policy_type=PolicyType.LRP,
            staking_reward=5,
            distribution_delay=86400,  # 1 day
            max_staking_threshold=10_000 * WEI_PER_TOKEN,
        ),
        "exclusive": RoyaltyPolicy(
            address=ZERO_ADDRESS,
            policy_type=PolicyType.LRP,
            staking_reward=10,
            distribution_delay=604800,  # 7 days
            max_staking_threshold=100_000 * WEI_PER_TOKEN,
        ),
    }


def default_license_tiers(policies: Mapping[str, RoyaltyPolicy]) -> dict[str, LicenseTier]:
    """The free/premium/exclusive catalog bound to the given policies."""
    return {
        "free": LicenseTier(
            tier="free",
            display_name="Free License",
            transferable=True,
            commercial_use=False,
            commercial_attribution=True,
            derivatives_allowed=True,
            derivatives_attribution=True,
            default_minting_fee=0,
            tip_price=0,
            royalty_percentage=0,
            royalty_policy=policies["free"],
            territories=("Worldwide",),
            distribution_channels=("Digital",),
            content_restrictions=("Non-commercial use only",),
            share_alike=True,
        ),
        "premium": LicenseTier(
            tier="premium",
            display_name="Premium License",
            transferable=True,
            commercial_use=True,
            commercial_attribution=True,
            derivatives_allowed=True,
            derivatives_attribution=True,
            default_minting_fee=100 * WEI_PER_TOKEN,
            tip_price=100,
            royalty_percentage=10,
            royalty_policy=policies["premium"],
            territories=("Worldwide",),
            distribution_channels=("Digital", "Print", "Audio", "Video"),
        ),
        "exclusive": LicenseTier(
            tier="exclusive",
            display_name="Exclusive License",
            transferable=False,
            commercial_use=True,
            commercial_attribution=True,
            derivatives_allowed=True,
            derivatives_attribution=True,
            default_minting_fee=1000 * WEI_PER_TOKEN,
            tip_price=1000,
            royalty_percentage=25,
            royalty_policy=policies["exclusive"],
            territories=("Worldwide",),
            distribution_channels=("All",),
            exclusivity=True,
        ),
    }


def _env_address(env: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = (env.get(name) or "").strip()
        if value and value not in PLACEHOLDER_ADDRESSES:
            return value
    return None


# =============================================================================
# Registry
# =============================================================================


class LicenseRegistry:
    """
    Read-only tier and policy catalog.

    Usage:
        registry = LicenseRegistry.default().configured_from_environment()
        tier = registry.get_tier("premium")
    """

    def __init__(
        self,
        tiers: Mapping[str, LicenseTier],
        policies: Mapping[str, RoyaltyPolicy],
        environment_configured: bool = False,
    ):
        self._tiers = MappingProxyType(dict(tiers))
        self._policies = MappingProxyType(dict(policies))
        self.environment_configured = environment_configured

    @classmethod
    def default(cls) -> "LicenseRegistry":
        """Registry seeded with the built-in tiers and policies."""
        policies = default_royalty_policies()
        return cls(default_license_tiers(policies), policies)

    @property
    def tiers(self) -> Mapping[str, LicenseTier]:
        return self._tiers

    @property
    def policies(self) -> Mapping[str, RoyaltyPolicy]:
        return self._policies

    def get_tier(self, name: str) -> LicenseTier:
        """
        Look up a tier by name.

        Raises:
            InvalidTierError: If the tier is not in the registry
        """
        tier = self._tiers.get(name)
        if tier is None:
            raise InvalidTierError(name)
        return tier

    def has_tier(self, name: str) -> bool:
        return name in self._tiers

    def list_tiers(self) -> list[LicenseTier]:
        return list(self._tiers.values())

    def get_policy(self, tier_name: str) -> RoyaltyPolicy:
        policy = self._policies.get(tier_name)
        if policy is None:
            raise InvalidTierError(tier_name)
        return policy

    def validate(self, tier: LicenseTier) -> TierValidation:
        """Check a tier definition against the catalog rules."""
        errors = []

        if tier.tier not in KNOWN_TIERS and tier.tier not in self._tiers:
            errors.append("Invalid tier name")

        if not 0 <= tier.royalty_percentage <= 100:
            errors.append("Royalty percentage must be between 0 and 100")

        if tier.tip_price < 0:
            errors.append("TIP price cannot be negative")

        if tier.default_minting_fee < 0:
            errors.append("Minting fee cannot be negative")

        if not tier.territories:
            errors.append("At least one territory must be specified")

        if not tier.distribution_channels:
            errors.append("At least one distribution channel must be specified")

        if tier.tier == "exclusive" and tier.transferable:
            errors.append("Exclusive licenses cannot be transferable")

        return TierValidation(valid=not errors, errors=errors)

    def tier_from_dict(self, data: dict[str, Any]) -> LicenseTier:
        """
        Build a tier from a camelCase payload, filling gaps from the catalog.

        Unknown tier names start from the free tier so validation can
        report on the remaining fields.
        """
        name = data.get("tier", "")
        base = self._tiers.get(name) or replace(self._tiers["free"], tier=name)

        return replace(
            base,
            display_name=data.get("displayName", base.display_name),
            transferable=data.get("transferable", base.transferable),
            commercial_use=data.get("commercialUse", base.commercial_use),
            commercial_attribution=data.get("commercialAttribution", base.commercial_attribution),
            derivatives_allowed=data.get("derivativesAllowed", base.derivatives_allowed),
            derivatives_attribution=data.get("derivativesAttribution", base.derivatives_attribution),
            default_minting_fee=int(data.get("defaultMintingFee", base.default_minting_fee)),
            tip_price=data.get("tipPrice", base.tip_price),
            royalty_percentage=data.get("royaltyPercentage", base.royalty_percentage),
            territories=tuple(data.get("territories", base.territories)),
            distribution_channels=tuple(
                data.get("distributionChannels", base.distribution_channels)
            ),
            content_restrictions=tuple(
                data.get("contentRestrictions", base.content_restrictions)
            ),
            exclusivity=data.get("exclusivity", base.exclusivity),
            share_alike=data.get("shareAlike", base.share_alike),
            attribution=data.get("attribution", base.attribution),
            expiration=data.get("expiration", base.expiration),
        )

    def configured_from_environment(self, env: Mapping[str, str] | None = None) -> "LicenseRegistry":
        """
        Return a registry with policy addresses taken from the environment.

        LAP applies to the free tier, LRP to premium and exclusive. Empty
        and placeholder values are ignored. Applying the same environment
        again yields the same addresses.
        """
        env = os.environ if env is None else env
        lap_address = _env_address(env, LAP_POLICY_ENV_VARS)
        lrp_address = _env_address(env, LRP_POLICY_ENV_VARS)

        policies = dict(self._policies)
        for name, policy in self._policies.items():
            if policy.policy_type == PolicyType.LAP and lap_address:
                policies[name] = replace(policy, address=lap_address)
            elif policy.policy_type == PolicyType.LRP and lrp_address:
                policies[name] = replace(policy, address=lrp_address)

        tiers = {
            name: replace(tier, royalty_policy=policies.get(name, tier.royalty_policy))
            for name, tier in self._tiers.items()
        }

        if lap_address or lrp_address:
            logger.info(
                "Royalty policies configured from environment (LAP=%s, LRP=%s)",
                bool(lap_address),
                bool(lrp_address),
            )
        else:
            logger.warning("No royalty policy addresses configured; using zero address")

        return LicenseRegistry(tiers, policies, environment_configured=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tiers": {name: tier.to_dict() for name, tier in self._tiers.items()},
            "environmentConfigured": self.environment_configured,
        }
