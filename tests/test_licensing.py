"""
Tests for license terms creation and chapter IP registration.
"""

import json
import os
import sys
from urllib.parse import unquote

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from conftest import make_chapter
from errors import InvalidTierError
from licensing import LicensingService, build_license_terms_params, build_nft_metadata
from storage import StorageWriteError


@pytest.fixture
def licensing(registry, ledger, records, metrics, sleeper):
    return LicensingService(registry, ledger, records, metrics=metrics, sleep=sleeper)


class TestLicenseTermsParams:
    """Tests for build_license_terms_params."""

    def test_premium(self, registry):
        params = build_license_terms_params(registry.get_tier("premium"))
        assert params["commercialUse"] is True
        assert params["commercialRevShare"] == 10
        assert params["derivativesReciprocal"] is False
        assert params["defaultMintingFee"] == str(registry.get_tier("premium").default_minting_fee)

    def test_free_is_reciprocal(self, registry):
        params = build_license_terms_params(registry.get_tier("free"))
        assert params["commercialUse"] is False
        assert params["derivativesReciprocal"] is True


class TestCreateLicenseTerms:
    """Tests for create_chapter_license_terms."""

    def test_success(self, licensing, ledger):
        result = licensing.create_chapter_license_terms("exclusive")

        assert result.success
        assert result.tier == "exclusive"
        assert ledger.license_terms[result.license_terms_id]["commercialRevShare"] == 25
        assert result.to_dict()["licenseTermsId"] == result.license_terms_id

    def test_custom_config(self, licensing, ledger):
        result = licensing.create_chapter_license_terms("premium", {"royaltyPercentage": 15})
        assert result.success
        assert ledger.license_terms[result.license_terms_id]["commercialRevShare"] == 15

    def test_invalid_custom_config(self, licensing, ledger):
        result = licensing.create_chapter_license_terms("premium", {"royaltyPercentage": 150})

        assert not result.success
        assert result.error_kind == "validation"
        assert "Royalty percentage" in result.error
        assert ledger.call_counts.get("register_license_terms", 0) == 0

    def test_unknown_tier(self, licensing):
        result = licensing.create_chapter_license_terms("platinum")
        assert result.error_kind == "not_found"

    def test_ledger_failure(self, licensing, ledger):
        ledger.fail_operation("register_license_terms", "execution reverted")
        result = licensing.create_chapter_license_terms("premium")

        assert not result.success
        assert result.error_kind == "ledger"
        assert "licenseTermsId" not in result.to_dict()

    def test_retry_counted(self, licensing, ledger, metrics, sleeper):
        ledger.fail_operation("register_license_terms", "network timeout", times=2)
        result = licensing.create_chapter_license_terms("premium")

        assert result.success
        assert sleeper.calls == [1.0, 1.5]
        assert metrics.get_counter("ledger_retries_total", {"operation": "register_license_terms"}) == 2


class TestRegisterChapterIP:
    """Tests for register_chapter_ip."""

    def test_success_with_terms(self, licensing, ledger, records):
        terms = licensing.create_chapter_license_terms("premium")
        result = licensing.register_chapter_ip(make_chapter(chapter_number=4), terms.license_terms_id)

        assert result.success
        assert ledger.attachments[result.ip_asset_id] == [terms.license_terms_id]
        assert ledger.ip_assets[result.ip_asset_id]["name"] == "The Lighthouse - Chapter 4"

        chapter = records.get_chapter("story-1-4")
        assert chapter["ipAssetId"] == result.ip_asset_id
        assert chapter["licenseTier"] == "premium"
        assert chapter["usage"]["totalReads"] == 0
        assert records.get_ip_asset(result.ip_asset_id)["licenseTermsId"] == terms.license_terms_id

    def test_without_terms_nothing_attached(self, licensing, ledger):
        result = licensing.register_chapter_ip(make_chapter())
        assert result.success
        assert result.ip_asset_id not in ledger.attachments
        assert ledger.call_counts.get("attach_license_terms", 0) == 0

    def test_metadata_uri_embeds_nft_metadata(self, licensing):
        result = licensing.register_chapter_ip(make_chapter())
        document = json.loads(unquote(result.metadata_uri.split(",", 1)[1]))

        assert document["name"] == "The Lighthouse - Chapter 1"
        traits = {a["trait_type"]: a["value"] for a in document["attributes"]}
        assert traits["Genre"] == "Mystery"
        assert traits["Quality Score"] == 70
        assert "unlockPrice" in document["properties"]["economics"]

    def test_attach_failure_is_warning(self, licensing, ledger):
        ledger.fail_operation("attach_license_terms", "execution reverted")
        result = licensing.register_chapter_ip(make_chapter(), "1")

        assert result.success
        assert len(result.warnings) == 1
        assert "Failed to attach license terms 1" in result.warnings[0]

    def test_mint_failure(self, licensing, ledger, records):
        ledger.fail_operation("mint_and_register_ip", "execution reverted")
        result = licensing.register_chapter_ip(make_chapter())

        assert not result.success
        assert result.error_kind == "ledger"
        assert records.get_chapter("story-1-1") is None

    def test_unknown_preferred_tier(self, licensing, ledger):
        result = licensing.register_chapter_ip(make_chapter(preferred_license_tier="platinum"))
        assert result.error_kind == "not_found"
        assert ledger.call_counts.get("mint_and_register_ip", 0) == 0

    @pytest.mark.parametrize("identity", [{"story_id": ""}, {"chapter_number": 0}])
    def test_chapter_identity_required(self, licensing, ledger, records, identity):
        result = licensing.register_chapter_ip(make_chapter(**identity))

        assert result.error_kind == "validation"
        assert ledger.call_counts.get("mint_and_register_ip", 0) == 0
        assert records.store.list_keys("chapters/") == []

    def test_reregistration_keeps_usage_and_last_claim(self, licensing, records):
        licensing.register_chapter_ip(make_chapter())
        chapter = records.get_chapter("story-1-1")
        chapter["usage"] = {"totalReads": 40, "totalLicenses": 2, "averageReadingTime": 700}
        chapter["lastClaim"] = {"transactionHash": "0xabc"}
        records.save_chapter("story-1-1", chapter)

        result = licensing.register_chapter_ip(make_chapter(title="The Lighthouse, Revised"))

        chapter = records.get_chapter("story-1-1")
        assert chapter["ipAssetId"] == result.ip_asset_id
        assert chapter["title"] == "The Lighthouse, Revised"
        assert chapter["usage"]["totalReads"] == 40
        assert chapter["lastClaim"] == {"transactionHash": "0xabc"}

    def test_store_failure_is_warning(self, licensing, records, metrics, monkeypatch):
        def failing_save(chapter_id, data):
            raise StorageWriteError("read-only")

        monkeypatch.setattr(records, "save_chapter", failing_save)
        result = licensing.register_chapter_ip(make_chapter())

        assert result.success
        assert result.warnings == ["Failed to persist chapters/story-1-1.json: read-only"]
        assert metrics.get_counter("persistence_warnings_total") == 1


class TestLicensingHelpers:
    """Tests for costs, NFT metadata, and status."""

    def test_costs(self, licensing, registry):
        costs = licensing.calculate_licensing_costs("premium")
        assert costs["royaltyPercentage"] == 10
        assert costs["tipPrice"] == registry.get_tier("premium").tip_price
        assert licensing.calculate_licensing_costs("premium", 42)["tipPrice"] == 42

    def test_costs_unknown_tier(self, licensing):
        with pytest.raises(InvalidTierError):
            licensing.calculate_licensing_costs("platinum")

    def test_nft_metadata_defaults(self):
        chapter = make_chapter(genre="", author_name="")
        metadata = build_nft_metadata(chapter)
        traits = {a["trait_type"]: a["value"] for a in metadata["attributes"]}
        assert traits["Genre"] == "Fiction"
        assert traits["Author"] == "Anonymous"
        assert metadata["properties"]["economics"] == {}

    def test_service_status(self, licensing):
        status = licensing.get_service_status()
        assert status["ledgerConnected"] is True
        assert status["availableTiers"] == ["free", "premium", "exclusive"]
        assert status["environmentConfigured"] is True
