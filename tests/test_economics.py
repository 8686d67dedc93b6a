"""
Tests for chapter economics calculators.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from conftest import make_chapter
from economics import (
    calculate_chapter_economics,
    calculate_optimal_pricing,
    calculate_revenue_breakdown,
    calculate_revenue_distribution,
    calculate_staking_rewards,
    calculate_tip_token_value,
    estimate_royalty_gas_costs,
)
from errors import InvalidTierError, ValidationError
from license_tiers import WEI_PER_TOKEN


class TestChapterEconomics:
    """Tests for calculate_chapter_economics."""

    def test_multipliers(self, registry):
        chapter = make_chapter(
            quality_score=80, originality_score=60, commercial_rights=True, unlock_price=10, read_reward=5
        )
        economics = calculate_chapter_economics(chapter, "premium", registry)

        # quality 1.8, originality 1.3, commercial 1.5
        assert economics.unlock_price == 18
        assert economics.read_reward == 11  # floor(5 * 1.8 * 1.3) = floor(11.7)
        assert economics.creator_reward == 8  # floor(11 * 0.8)
        assert economics.license_price == 270  # floor(100 * 1.8 * 1.5)

    def test_tier_figures(self, registry):
        economics = calculate_chapter_economics(make_chapter(), "exclusive", registry)
        assert economics.royalty_percentage == 25
        assert economics.platform_fee == 5
        assert economics.staking_reward == 10
        assert economics.streak_bonus == 10
        assert economics.volume_discount == 15

    def test_quality_bonus_negative_below_fifty(self, registry):
        economics = calculate_chapter_economics(make_chapter(quality_score=41), "free", registry)
        assert economics.quality_bonus == -5  # floor(-4.5)

    def test_no_commercial_rights(self, registry):
        chapter = make_chapter(quality_score=0, commercial_rights=False)
        assert calculate_chapter_economics(chapter, "premium", registry).license_price == 100

    def test_unknown_tier(self, registry):
        with pytest.raises(InvalidTierError):
            calculate_chapter_economics(make_chapter(), "platinum", registry)


class TestOptimalPricing:
    """Tests for calculate_optimal_pricing."""

    def strong_chapter(self):
        return make_chapter(
            quality_score=95, originality_score=80, commercial_viability=70, commercial_rights=True
        )

    def test_exclusive_audience(self, registry):
        suggestion = calculate_optimal_pricing(self.strong_chapter(), "exclusive", registry)
        assert suggestion.suggested_tier == "exclusive"

    def test_mass_audience_forces_free(self, registry):
        suggestion = calculate_optimal_pricing(self.strong_chapter(), "mass", registry)
        assert suggestion.suggested_tier == "free"
        assert any("mass market" in reason for reason in suggestion.reasoning)

    def test_premium_when_not_exceptional(self, registry):
        chapter = make_chapter(
            quality_score=80, originality_score=75, commercial_viability=65, commercial_rights=True
        )
        assert calculate_optimal_pricing(chapter, "premium", registry).suggested_tier == "premium"

    def test_premium_on_commercial_viability_alone(self, registry):
        chapter = make_chapter(quality_score=40, commercial_viability=60, commercial_rights=False)
        assert calculate_optimal_pricing(chapter, "premium", registry).suggested_tier == "premium"

    def test_free_for_weak_content(self, registry):
        chapter = make_chapter(quality_score=40, commercial_viability=30)
        assert calculate_optimal_pricing(chapter, "premium", registry).suggested_tier == "free"

    def test_projections(self, registry):
        chapter = make_chapter(
            quality_score=50, originality_score=0, commercial_viability=0, commercial_rights=False, read_reward=2
        )
        suggestion = calculate_optimal_pricing(chapter, "premium", registry)
        # read reward floor(2 * 1.5 * 1.0) = 3; 100 reads * 1.5 quality
        assert suggestion.suggested_pricing.read_reward == 3
        assert suggestion.projected_revenue == {
            "conservative": 225,
            "optimistic": 450,
            "aggressive": 900,
        }

    def test_invalid_audience(self, registry):
        with pytest.raises(ValidationError):
            calculate_optimal_pricing(make_chapter(), "niche", registry)


class TestRevenueCalculators:
    """Tests for the revenue distribution, staking, and breakdown helpers."""

    def test_revenue_distribution(self, registry):
        economics = calculate_chapter_economics(make_chapter(), "premium", registry)
        result = calculate_revenue_distribution(economics, 1000, "premium", registry)

        assert result["breakdown"]["baseRoyalty"] == pytest.approx(100)
        assert result["platform"] == pytest.approx(50)
        assert result["stakers"] == pytest.approx(5)
        assert result["originalCreator"] == pytest.approx(95)
        assert result["derivativeCreator"] == pytest.approx(850)

    def test_staking_bonus_tiers(self, registry):
        short = calculate_staking_rewards(1000, 30, "premium", registry)
        quarter = calculate_staking_rewards(1000, 90, "premium", registry)
        year = calculate_staking_rewards(1000, 365, "premium", registry)

        assert short["bonusReward"] == 0
        assert quarter["totalReward"] == pytest.approx(quarter["baseReward"] * 1.2)
        assert year["totalReward"] == pytest.approx(year["baseReward"] * 1.5)
        assert year["apy"] == pytest.approx(7.5)

    def test_stake_above_threshold_rejected(self, registry):
        with pytest.raises(ValidationError):
            calculate_staking_rewards(20_000 * WEI_PER_TOKEN, 30, "premium", registry)

    def test_stake_must_be_positive(self, registry):
        with pytest.raises(ValidationError):
            calculate_staking_rewards(0, 30, "premium", registry)

    def test_revenue_breakdown(self, registry):
        breakdown = calculate_revenue_breakdown(1000, "exclusive", registry)
        assert breakdown["creatorRoyalty"] == 250
        assert breakdown["platformFee"] == 50
        assert breakdown["readerRewards"] == 50
        assert breakdown["remainingAmount"] == 650
        assert breakdown["breakdown"]["remaining"] == 65

    def test_gas_and_token_estimates(self):
        gas = estimate_royalty_gas_costs("distribute")
        assert gas["estimatedGas"] == 200_000
        assert estimate_royalty_gas_costs("unknown")["estimatedGas"] == 150_000

        value = calculate_tip_token_value(100, "license")
        assert value["usdEquivalent"] == pytest.approx(10)
        assert value["gasEstimate"] == 100_000
