"""
Tests for royalty distribution.

Tests:
- Decimal distribution of derivative revenue
- Integer royalty sharing with 0, 1, and N derivatives
- Pluggable split strategies
- Claimable royalties and royalty claims through the ledger
- Per-author claim history and statistics
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from errors import EngineError, InvalidTierError, ValidationError
from ip_records import DerivativeRelationship
from license_tiers import WEI_PER_TOKEN
from royalty_distribution import (
    DerivativeSplitStrategy,
    EqualSplitStrategy,
    RoyaltyHistoryEntry,
    RoyaltySharingService,
    calculate_royalty_distribution,
    categorize_royalty_error,
    split_royalty_revenue,
)
from storage import StorageWriteError


def relationship(n, registration_time=None, parent_chapter_id="story-1-1"):
    return DerivativeRelationship(
        ip_id=f"0xchild{n:034d}",
        parent_ip_id="0xparent00000000000000000000000000000000",
        parent_chapter_id=parent_chapter_id,
        license_terms_id="1",
        transaction_hash=f"0x{n:064x}",
        derivative_type="remix",
        similarity_score=0.7,
        creator_address=f"0xcreator{n}",
        registration_time=registration_time or f"2024-01-0{n}T00:00:00",
    )


def save_chapter(records, chapter_id="story-1-1", tier="premium", **fields):
    chapter = {
        "chapterId": chapter_id,
        "title": "The Lighthouse",
        "licenseTier": tier,
        "authorAddress": "0xAuthor",
        "qualityScore": 70,
        "ipAssetId": "0xip0000000000000000000000000000000000001",
        "usage": {"totalReads": 0, "totalLicenses": 0, "averageReadingTime": 0},
    }
    chapter.update(fields)
    records.save_chapter(chapter_id, chapter)
    return chapter


class ReverseWeightedStrategy(DerivativeSplitStrategy):
    """Gives everything to the last derivative."""

    name = "last-takes-all"

    def split(self, amount, derivatives):
        return [0] * (len(derivatives) - 1) + [amount]


class LeakyStrategy(DerivativeSplitStrategy):
    name = "leaky"

    def split(self, amount, derivatives):
        return [amount // (len(derivatives) + 1)] * len(derivatives)


@pytest.fixture
def service(records, registry, ledger, metrics, sleeper):
    return RoyaltySharingService(records, registry, ledger, metrics=metrics, sleep=sleeper)


class TestRoyaltyDistribution:
    """Tests for calculate_royalty_distribution."""

    @pytest.mark.parametrize("tier", ["free", "premium", "exclusive"])
    @pytest.mark.parametrize("revenue", [0, 1, 999, 1000, "12345.67"])
    def test_totals_reconcile(self, registry, tier, revenue):
        result = calculate_royalty_distribution(tier, revenue, registry)
        revenue = Decimal(str(revenue))

        assert result.platform == revenue * Decimal("0.05")
        assert result.total == result.original_creator + result.stakers + result.platform

    def test_premium_split(self, registry):
        result = calculate_royalty_distribution("premium", 1000, registry)
        assert result.original_creator == Decimal("95")
        assert result.stakers == Decimal("5")
        assert result.platform == Decimal("50")
        assert result.total == Decimal("150")

    def test_free_tier_has_no_creator_royalty(self, registry):
        result = calculate_royalty_distribution("free", 1000, registry)
        assert result.original_creator == 0
        assert result.total == Decimal("50")

    def test_negative_revenue(self, registry):
        with pytest.raises(ValidationError):
            calculate_royalty_distribution("premium", -1, registry)

    def test_unknown_tier(self, registry):
        with pytest.raises(InvalidTierError):
            calculate_royalty_distribution("platinum", 100, registry)


class TestRoyaltySharing:
    """Tests for split_royalty_revenue."""

    @pytest.mark.parametrize("count", [0, 1, 3, 7])
    @pytest.mark.parametrize("revenue", [0, 1, 99, 10**18 + 7])
    def test_shares_sum_exactly(self, registry, count, revenue):
        derivatives = [relationship(n + 1) for n in range(count)]
        distribution = split_royalty_revenue(
            "story-1-1", revenue, "exclusive", "0xAuthor", derivatives, registry
        )
        assert distribution.total_distributed == revenue
        assert len(distribution.derivatives) == count

    def test_no_derivatives_remainder_to_creator(self, registry):
        distribution = split_royalty_revenue("story-1-1", 1000, "premium", "0xAuthor", [], registry)
        assert distribution.platform_amount == 50
        assert distribution.creator_amount == 950

    def test_equal_split(self, registry):
        derivatives = [relationship(1), relationship(2)]
        distribution = split_royalty_revenue(
            "story-1-1", 1000, "premium", "0xAuthor", derivatives, registry
        )
        assert distribution.creator_amount == 100
        assert [d.amount for d in distribution.derivatives] == [425, 425]
        assert distribution.derivatives[0].percentage == pytest.approx(42.5)

    def test_leftover_units_go_to_earliest(self, registry):
        # Later registration listed first
        derivatives = [relationship(2), relationship(1), relationship(3)]
        distribution = split_royalty_revenue(
            "story-1-1", 102, "free", "0xAuthor", derivatives, registry
        )
        # platform 5, creator 0, pool 97 -> 32 each with one leftover
        assert [d.amount for d in distribution.derivatives] == [32, 33, 32]

    def test_custom_strategy(self, registry):
        derivatives = [relationship(1), relationship(2)]
        distribution = split_royalty_revenue(
            "story-1-1", 1000, "premium", "0xAuthor", derivatives, registry, ReverseWeightedStrategy()
        )
        assert [d.amount for d in distribution.derivatives] == [0, 850]

    def test_strategy_must_distribute_full_pool(self, registry):
        with pytest.raises(EngineError):
            split_royalty_revenue(
                "story-1-1", 1000, "premium", "0xAuthor", [relationship(1)], registry, LeakyStrategy()
            )

    def test_negative_revenue(self, registry):
        with pytest.raises(ValidationError):
            split_royalty_revenue("story-1-1", -5, "premium", "0xAuthor", [], registry)

    def test_equal_split_strategy_empty(self):
        assert EqualSplitStrategy().split(100, []) == []


class TestRoyaltySharingService:
    """Tests for RoyaltySharingService.calculate_royalty_sharing."""

    def test_uses_chapter_derivatives(self, service, records):
        save_chapter(records)
        records.save_relationship(relationship(1))
        records.save_relationship(relationship(2))

        result = service.calculate_royalty_sharing("story-1-1", 1000)

        assert result.success
        assert result.distribution.license_tier == "premium"
        assert [d.amount for d in result.distribution.derivatives] == [425, 425]
        assert result.to_dict()["distribution"]["totalDistributed"] == "1000"

    def test_missing_chapter(self, service):
        result = service.calculate_royalty_sharing("missing", 1000)
        assert not result.success
        assert result.error_kind == "not_found"

    def test_unknown_tier(self, service, records):
        save_chapter(records, tier="platinum")
        result = service.calculate_royalty_sharing("story-1-1", 1000)
        assert not result.success
        assert result.error_kind == "not_found"
        assert "platinum" in result.error

    def test_injected_strategy(self, records, registry, ledger, sleeper):
        service = RoyaltySharingService(
            records, registry, ledger, split_strategy=ReverseWeightedStrategy(), sleep=sleeper
        )
        save_chapter(records)
        records.save_relationship(relationship(1))
        records.save_relationship(relationship(2))

        result = service.calculate_royalty_sharing("story-1-1", 1000)
        assert [d.amount for d in result.distribution.derivatives] == [0, 850]


class TestClaimableRoyalties:
    """Tests for get_claimable_royalties."""

    def test_from_usage(self, service, records):
        save_chapter(
            records,
            qualityScore=85,
            usage={"totalReads": 1000, "totalLicenses": 2, "averageReadingTime": 700},
        )
        claimable = service.get_claimable_royalties("story-1-1")

        # revenue = 1000 * 0.01 + 2 * 10 = 30; premium royalty 10%
        assert claimable.success
        assert claimable.base_royalties == pytest.approx(3.0)
        # engagement 2% + quality 1%
        assert claimable.bonus_royalties == pytest.approx(0.9)
        assert claimable.tip_token_rewards == pytest.approx(100.0)
        assert claimable.total_claimable == pytest.approx(103.9)

    def test_no_bonus_below_thresholds(self, service, records):
        save_chapter(
            records,
            qualityScore=80,
            usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 600},
        )
        assert service.get_claimable_royalties("story-1-1").bonus_royalties == 0

    def test_missing_chapter(self, service):
        claimable = service.get_claimable_royalties("missing")
        assert not claimable.success
        assert claimable.error_kind == "not_found"


class TestClaimRoyalties:
    """Tests for claim_chapter_royalties."""

    def test_successful_claim(self, service, records, ledger, metrics):
        chapter = save_chapter(records, usage={"totalReads": 1000, "totalLicenses": 0, "averageReadingTime": 0})
        ledger.set_royalty_balance(chapter["ipAssetId"], 2 * WEI_PER_TOKEN)

        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert result.success
        assert result.amount == 2 * WEI_PER_TOKEN
        assert result.tip_token_amount == pytest.approx(2000)
        assert result.platform_fee == pytest.approx(100)
        assert result.transaction_hash.startswith("0x")
        assert records.get_chapter("story-1-1")["lastClaim"]["transactionHash"] == result.transaction_hash
        assert metrics.get_counter("royalty_claims_total", {"outcome": "success"}) == 1

    def test_claimable_estimate_used_when_ledger_reports_zero(self, service, records):
        save_chapter(records, usage={"totalReads": 10, "totalLicenses": 0, "averageReadingTime": 0})
        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        # claimable = 0.01 base + 1 TIP reward
        assert result.success
        assert result.amount == int(Decimal("1.01") * WEI_PER_TOKEN)

    def test_nothing_to_claim(self, service, records, ledger):
        save_chapter(records)
        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert not result.success
        assert result.error_kind == "validation"
        assert ledger.call_counts.get("claim_royalties", 0) == 0

    def test_author_address_required(self, service, records):
        save_chapter(records)
        result = service.claim_chapter_royalties("story-1-1", "")
        assert result.error_kind == "validation"

    def test_unregistered_chapter(self, service, records):
        save_chapter(records, ipAssetId=None)
        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")
        assert result.error_kind == "not_found"

    def test_retries_network_errors(self, service, records, ledger, sleeper, metrics):
        save_chapter(records, usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 0})
        ledger.fail_operation("claim_royalties", "network timeout", times=2)

        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert result.success
        assert ledger.call_counts["claim_royalties"] == 3
        assert sleeper.calls == [1.0, 1.5]
        assert metrics.get_counter("ledger_retries_total", {"operation": "claim_royalties"}) == 2

    def test_contract_revert_not_retried(self, service, records, ledger, sleeper):
        save_chapter(records, usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 0})
        ledger.fail_operation("claim_royalties", "execution reverted: claim window closed")

        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert not result.success
        assert result.error_kind == "ledger"
        assert result.error_info.category == "royalty_error"
        assert result.error_info.retryable is False
        assert ledger.call_counts["claim_royalties"] == 1
        assert sleeper.calls == []
        assert "errorInfo" in result.to_dict()

    def test_persistence_failure_is_warning(self, service, records, ledger, monkeypatch):
        save_chapter(records, usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 0})

        def failing_save(chapter_id, data):
            raise StorageWriteError("disk full")

        monkeypatch.setattr(records, "save_chapter", failing_save)
        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert result.success
        assert len(result.warnings) == 1
        assert "disk full" in result.warnings[0]


class TestRoyaltyErrorCategories:
    """Tests for categorize_royalty_error."""

    @pytest.mark.parametrize(
        "message,category,retryable",
        [
            ("wallet not configured", "wallet_error", True),
            ("rpc endpoint down", "network_error", True),
            ("gas estimation failed", "gas_error", True),
            ("no royalty to claim", "royalty_error", False),
            ("unauthorized caller", "royalty_error", False),
            ("something odd", "unknown_error", True),
        ],
    )
    def test_categories(self, message, category, retryable):
        info = categorize_royalty_error(Exception(message))
        assert info.category == category
        assert info.retryable is retryable
        assert len(info.suggested_actions) == 3


def history_entry(status, amount=0, chapter_id="story-1-1", timestamp="2024-01-01T00:00:00", fee=0.0):
    return RoyaltyHistoryEntry(
        chapter_id=chapter_id,
        author_address="0xAuthor",
        status=status,
        amount=amount,
        platform_fee=fee,
        timestamp=timestamp,
    ).to_dict()


class TestRoyaltyHistory:
    """Tests for claim history, history queries, and statistics."""

    def test_successful_claim_recorded(self, service, records, ledger):
        chapter = save_chapter(records, usage={"totalReads": 1000, "totalLicenses": 0, "averageReadingTime": 0})
        ledger.set_royalty_balance(chapter["ipAssetId"], 2 * WEI_PER_TOKEN)

        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        entries = records.get_royalty_history("0xauthor")
        assert len(entries) == 1
        assert entries[0]["status"] == "completed"
        assert entries[0]["amount"] == str(2 * WEI_PER_TOKEN)
        assert entries[0]["transactionHash"] == result.transaction_hash

    def test_failed_claim_recorded(self, service, records, ledger):
        save_chapter(records, usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 0})
        ledger.fail_operation("claim_royalties", "execution reverted")

        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert not result.success
        entries = records.get_royalty_history("0xAuthor")
        assert [e["status"] for e in entries] == ["failed"]
        assert entries[0]["error"] == result.error

    def test_rejected_before_ledger_not_recorded(self, service, records):
        save_chapter(records)
        service.claim_chapter_royalties("story-1-1", "0xAuthor")
        assert records.get_royalty_history("0xAuthor") == []

    def test_claim_keeps_chapter_usage(self, service, records):
        usage = {"totalReads": 10, "totalLicenses": 0, "averageReadingTime": 0}
        save_chapter(records, usage=usage)
        service.claim_chapter_royalties("story-1-1", "0xAuthor")

        chapter = records.get_chapter("story-1-1")
        assert chapter["usage"] == usage
        assert "lastClaim" in chapter

    def test_history_write_failure_is_warning(self, service, records, monkeypatch):
        save_chapter(records, usage={"totalReads": 100, "totalLicenses": 0, "averageReadingTime": 0})

        def failing_append(author_address, entry):
            raise StorageWriteError("bucket offline")

        monkeypatch.setattr(records, "append_royalty_history", failing_append)
        result = service.claim_chapter_royalties("story-1-1", "0xAuthor")

        assert result.success
        assert result.warnings == ["Failed to persist royalties/history/0xauthor.json: bucket offline"]

    def test_history_newest_first_with_pagination(self, service, records):
        for day in range(1, 6):
            records.append_royalty_history(
                "0xAuthor", history_entry("completed", amount=day, timestamp=f"2024-01-0{day}T00:00:00")
            )

        first = service.get_royalty_history("0xAuthor", page=1, limit=2)
        last = service.get_royalty_history("0xAuthor", page=3, limit=2)

        assert [e.amount for e in first.entries] == [5, 4]
        assert first.total == 5
        assert first.has_more
        assert [e.amount for e in last.entries] == [1]
        assert not last.has_more

    def test_filters_narrow_entries_not_summary(self, service, records):
        records.append_royalty_history("0xAuthor", history_entry("completed", amount=100, fee=5.0))
        records.append_royalty_history("0xAuthor", history_entry("failed", chapter_id="story-1-2"))
        records.append_royalty_history("0xAuthor", history_entry("completed", amount=300, chapter_id="story-1-2"))

        result = service.get_royalty_history("0xAuthor", status="completed", chapter_id="story-1-2")

        assert [e.amount for e in result.entries] == [300]
        assert result.summary.attempt_count == 3

    def test_statistics(self, service, records):
        records.append_royalty_history(
            "0xAuthor", history_entry("completed", amount=100, fee=5.0, timestamp="2024-01-01T00:00:00")
        )
        records.append_royalty_history(
            "0xAuthor", history_entry("completed", amount=301, fee=15.0, timestamp="2024-01-03T00:00:00")
        )
        records.append_royalty_history("0xAuthor", history_entry("failed", timestamp="2024-01-04T00:00:00"))

        stats = service.get_royalty_statistics("0xAuthor")

        assert stats.total_claimed == 401
        assert stats.total_fees_paid == pytest.approx(20.0)
        assert stats.claim_count == 2
        assert stats.success_rate == pytest.approx(66.67)
        assert stats.average_claim_amount == 200
        assert stats.last_claim_date == "2024-01-03T00:00:00"

    def test_empty_history(self, service):
        result = service.get_royalty_history("0xNobody")

        assert result.success
        assert result.entries == []
        assert result.summary.success_rate == 0.0
        assert result.to_dict()["pagination"]["hasMore"] is False

    @pytest.mark.parametrize(
        "kwargs",
        [{"page": 0}, {"limit": 0}, {"limit": 101}, {"status": "pending"}],
    )
    def test_invalid_query(self, service, kwargs):
        result = service.get_royalty_history("0xAuthor", **kwargs)
        assert result.error_kind == "validation"
