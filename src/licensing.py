"""
ChapterIP - Chapter Licensing Service
Registers programmable license terms for tiers and chapters as IP assets.

License terms and IP registration go through the ledger client with the
blockchain retry strategy. Attaching terms to a freshly minted asset is
best-effort: a failure there is reported as a warning.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from urllib.parse import quote

from blockchain_errors import LicenseAttachmentError, execute_with_retry_strategy
from economics import ChapterContent, calculate_chapter_economics
from errors import EngineError, LedgerError, OperationResult, PersistenceWarning, ValidationError
from ip_records import IPRecordStore
from ledger_client import DEFAULT_CURRENCY_TOKEN, LedgerClient
from license_tiers import ZERO_ADDRESS, LicenseRegistry, LicenseTier
from monitoring.metrics import MetricsCollector
from storage import StorageError

logger = logging.getLogger(__name__)

EMPTY_HASH = "0x" + "0" * 64
DEFAULT_IMAGE = "https://chapterip.example/cover.svg"


# =============================================================================
# Results
# =============================================================================


@dataclass
class LicenseTermsResult(OperationResult):
    tier: str = ""
    license_terms_id: str | None = None
    transaction_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result["tier"] = self.tier
        if self.success:
            result["licenseTermsId"] = self.license_terms_id
            result["transactionHash"] = self.transaction_hash
        return result


@dataclass
class ChapterIPResult(OperationResult):
    ip_asset_id: str | None = None
    token_id: str | None = None
    transaction_hash: str | None = None
    license_terms_id: str | None = None
    metadata_uri: str | None = None
    registration_time: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        if self.success:
            result.update(
                {
                    "ipAssetId": self.ip_asset_id,
                    "tokenId": self.token_id,
                    "transactionHash": self.transaction_hash,
                    "licenseTermsId": self.license_terms_id,
                    "metadataUri": self.metadata_uri,
                }
            )
        result["registrationTime"] = self.registration_time
        return result


# =============================================================================
# Helpers
# =============================================================================


def build_license_terms_params(tier: LicenseTier) -> dict[str, Any]:
    """Programmable license parameters for a tier."""
    return {
        "tier": tier.tier,
        "transferable": tier.transferable,
        "royaltyPolicy": tier.royalty_policy.address,
        "defaultMintingFee": str(tier.default_minting_fee),
        "expiration": tier.expiration,
        "commercialUse": tier.commercial_use,
        "commercialAttribution": tier.commercial_attribution,
        "commercializerChecker": ZERO_ADDRESS,
        "commercializerCheckerData": "0x",
        "commercialRevShare": tier.royalty_percentage,
        "commercialRevCeiling": "0",
        "derivativesAllowed": tier.derivatives_allowed,
        "derivativesAttribution": tier.derivatives_attribution,
        "derivativesApproval": False,
        "derivativesReciprocal": tier.share_alike,
        "derivativeRevCeiling": "0",
        "territories": list(tier.territories),
        "distributionChannels": list(tier.distribution_channels),
        "contentRestrictions": list(tier.content_restrictions),
        "currency": DEFAULT_CURRENCY_TOKEN,
        "uri": "",
    }


def build_nft_metadata(content: ChapterContent, economics: dict[str, Any] | None = None) -> dict[str, Any]:
    """NFT metadata document for a chapter."""
    meta = content.metadata
    genre = meta.genre or "Fiction"
    return {
        "name": f"{content.title} - Chapter {content.chapter_number}",
        "description": f'Chapter {content.chapter_number} of "{content.title}" - {genre} story',
        "image": DEFAULT_IMAGE,
        "content_url": content.content_url,
        "external_url": content.content_url,
        "attributes": [
            {"trait_type": "Chapter Number", "value": content.chapter_number},
            {"trait_type": "Story ID", "value": content.story_id},
            {"trait_type": "Genre", "value": genre},
            {"trait_type": "Content Rating", "value": meta.content_rating},
            {"trait_type": "Language", "value": meta.language},
            {"trait_type": "Quality Score", "value": meta.quality_score},
            {"trait_type": "Originality Score", "value": meta.originality_score},
            {"trait_type": "Commercial Viability", "value": meta.commercial_viability},
            {"trait_type": "Word Count", "value": meta.word_count},
            {"trait_type": "Reading Time", "value": meta.estimated_reading_time},
            {"trait_type": "License Tier", "value": meta.preferred_license_tier},
            {"trait_type": "Author", "value": meta.author_name or "Anonymous"},
            {"trait_type": "Commercial Rights", "value": meta.commercial_rights},
            {"trait_type": "Derivatives Allowed", "value": meta.allow_derivatives},
        ],
        "properties": {
            "language": meta.language,
            "tags": list(meta.tags),
            "economics": economics or {},
        },
    }


# =============================================================================
# Service
# =============================================================================


class LicensingService:
    """
    Creates license terms and registers chapters as IP assets.

    Usage:
        service = LicensingService(registry, ledger, records)
        terms = service.create_chapter_license_terms("premium")
        result = service.register_chapter_ip(chapter, terms.license_terms_id)
    """

    def __init__(
        self,
        registry: LicenseRegistry,
        ledger: LedgerClient,
        records: IPRecordStore,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.ledger = ledger
        self.records = records
        self.metrics = metrics or MetricsCollector()
        self.sleep = sleep

    def _with_retry(self, operation_name: str, operation: Callable[[], Any]) -> Any:
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.metrics.increment("ledger_retries_total", labels={"operation": operation_name})

        return execute_with_retry_strategy(operation, sleep=self.sleep, on_retry=on_retry)

    def create_chapter_license_terms(
        self, tier_name: str, custom_config: dict[str, Any] | None = None
    ) -> LicenseTermsResult:
        """
        Register license terms for a tier, optionally overriding tier fields.

        Args:
            tier_name: Tier to start from
            custom_config: camelCase overrides, e.g. {"royaltyPercentage": 15}
        """
        try:
            tier = self.registry.get_tier(tier_name)
            if custom_config:
                tier = self.registry.tier_from_dict({**tier.to_dict(), **custom_config, "tier": tier_name})
                validation = self.registry.validate(tier)
                if not validation.valid:
                    return LicenseTermsResult(
                        success=False,
                        error="; ".join(validation.errors),
                        error_kind="validation",
                        tier=tier_name,
                    )

            params = build_license_terms_params(tier)
            logger.info(
                "Creating %s license terms (commercialUse=%s, royalty=%d%%)",
                tier_name,
                tier.commercial_use,
                tier.royalty_percentage,
            )
            receipt = self._with_retry(
                "register_license_terms", lambda: self.ledger.register_license_terms(params)
            )
        except EngineError as e:
            return LicenseTermsResult.failure(e, tier=tier_name)
        except Exception as e:
            ledger_error = LedgerError.from_exception(e)
            logger.error("Failed to create %s license terms: %s", tier_name, ledger_error.message)
            return LicenseTermsResult.failure(ledger_error, tier=tier_name)

        logger.info("License terms %s created (tx=%s)", receipt.license_terms_id, receipt.tx_hash)
        return LicenseTermsResult(
            success=True,
            tier=tier_name,
            license_terms_id=receipt.license_terms_id,
            transaction_hash=receipt.tx_hash,
        )

    def register_chapter_ip(
        self, content: ChapterContent, license_terms_id: str | None = None
    ) -> ChapterIPResult:
        """
        Mint and register a chapter as an IP asset, then attach license terms.

        The chapter and IP asset records are written to the store; write
        failures become warnings. An existing chapter record is updated,
        keeping its cached usage and last claim.
        """
        meta = content.metadata
        tier_name = meta.preferred_license_tier or "free"
        warnings = []

        if not content.story_id.strip():
            return ChapterIPResult.failure(ValidationError("Chapter storyId is required"))
        if content.chapter_number < 1:
            return ChapterIPResult.failure(
                ValidationError("Chapter number must be at least 1", {"chapterNumber": content.chapter_number})
            )

        try:
            economics = calculate_chapter_economics(content, tier_name, self.registry).to_dict()
        except EngineError as e:
            return ChapterIPResult.failure(e)

        nft_metadata = build_nft_metadata(content, economics)
        metadata_uri = "data:application/json," + quote(json.dumps(nft_metadata))
        params = {
            "name": nft_metadata["name"],
            "recipient": meta.author_address,
            "ipMetadata": {
                "ipMetadataURI": metadata_uri,
                "ipMetadataHash": EMPTY_HASH,
                "nftMetadataURI": metadata_uri,
                "nftMetadataHash": EMPTY_HASH,
            },
            "allowDuplicates": True,
        }

        logger.info("Registering chapter IP: %s chapter %d", content.title, content.chapter_number)
        try:
            receipt = self._with_retry("mint_and_register_ip", lambda: self.ledger.mint_and_register_ip(params))
        except Exception as e:
            ledger_error = LedgerError.from_exception(e)
            logger.error("Chapter IP registration failed: %s", ledger_error.message)
            return ChapterIPResult.failure(ledger_error)

        if license_terms_id:
            try:
                self._with_retry(
                    "attach_license_terms",
                    lambda: self.ledger.attach_license_terms(receipt.ip_id, license_terms_id),
                )
            except Exception as e:
                error = LicenseAttachmentError(
                    f"Failed to attach license terms {license_terms_id}", original_error=e
                )
                logger.warning("%s to %s: %s", error, receipt.ip_id, e)
                warnings.append(f"{error}: {e}")

        chapter_id = f"{content.story_id}-{content.chapter_number}"
        documents = (
            (
                f"ip-assets/{receipt.ip_id}.json",
                lambda: self.records.save_ip_asset(
                    receipt.ip_id,
                    {
                        "ipId": receipt.ip_id,
                        "tokenId": receipt.token_id,
                        "transactionHash": receipt.tx_hash,
                        "licenseTermsId": license_terms_id,
                        "chapterId": chapter_id,
                        "ownerAddress": meta.author_address,
                        "qualityScore": meta.quality_score,
                        "originalityScore": meta.originality_score,
                        "commercialViability": meta.commercial_viability,
                    },
                ),
            ),
            (
                f"chapters/{chapter_id}.json",
                lambda: self.records.merge_chapter(
                    chapter_id,
                    {
                        "chapterId": chapter_id,
                        "title": content.title,
                        "licenseTier": tier_name,
                        "authorAddress": meta.author_address,
                        "qualityScore": meta.quality_score,
                        "ipAssetId": receipt.ip_id,
                        "content": content.content,
                    },
                    defaults={"usage": {"totalReads": 0, "totalLicenses": 0, "averageReadingTime": 0}},
                ),
            ),
        )
        for key, save in documents:
            try:
                save()
            except StorageError as e:
                warning = PersistenceWarning(key, e)
                logger.warning(warning.message)
                self.metrics.increment("persistence_warnings_total")
                warnings.append(warning.message)

        logger.info("Chapter IP registered: %s (tx=%s)", receipt.ip_id, receipt.tx_hash)
        return ChapterIPResult(
            success=True,
            ip_asset_id=receipt.ip_id,
            token_id=receipt.token_id,
            transaction_hash=receipt.tx_hash,
            license_terms_id=license_terms_id,
            metadata_uri=metadata_uri,
            warnings=warnings,
        )

    def calculate_licensing_costs(self, tier_name: str, custom_price: float | None = None) -> dict[str, Any]:
        """
        Minting fee, TIP price, and royalty percentage for a tier.

        Raises:
            InvalidTierError: If the tier is unknown
        """
        tier = self.registry.get_tier(tier_name)
        return {
            "mintingFee": str(tier.default_minting_fee),
            "tipPrice": custom_price if custom_price else tier.tip_price,
            "royaltyPercentage": tier.royalty_percentage,
        }

    def get_service_status(self) -> dict[str, Any]:
        healthy, health = self.ledger.health_check()
        return {
            "ledgerConnected": healthy,
            "ledger": health.to_dict() if healthy else health,
            "availableTiers": list(self.registry.tiers),
            "royaltyPolicies": {name: p.to_dict() for name, p in self.registry.policies.items()},
            "environmentConfigured": self.registry.environment_configured,
        }
