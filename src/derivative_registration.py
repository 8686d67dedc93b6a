"""
ChapterIP - Derivative Registration Workflow

Registers a derivative work against a parent IP asset:

    Validating -> ScoringSimilarity -> ResolvingLicense -> RegisteringIP
        -> RegisteringRelationship -> Completed

Any stage can end in Failed. Failures come back as results with
success=False; nothing raises out of register_derivative. The ledger is the
source of truth, so once the derivative link is on the ledger a failed
relationship-record write only adds a warning.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from blockchain_errors import ErrorCode, execute_with_retry_strategy
from economics import ChapterContent, ChapterMetadata
from errors import (
    EngineError,
    LedgerError,
    OperationResult,
    PersistenceWarning,
    UnsupportedOperationError,
    ValidationError,
)
from ip_records import DerivativeRelationship, IPRecordStore
from ledger_client import LedgerClient, LicenseTermsInfo
from license_tiers import LicenseRegistry
from licensing import LicensingService
from monitoring import LoggingContext
from monitoring.metrics import MetricsCollector
from similarity import SimilarityError, SimilarityService
from storage import StorageError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

DERIVATIVE_TYPES = ("remix", "sequel", "adaptation", "translation", "other")

MIN_PARENT_ID_LENGTH = 20
NEUTRAL_SIMILARITY = 0.5
DEFAULT_PARENT_QUALITY = 50
DEFAULT_PARENT_TIER = "premium"

# Revenue projection: quality score * 10 TIP tokens
REVENUE_PER_QUALITY_POINT = 10

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 1.0  # seconds

IMPROVEMENT_AREAS = (
    "Narrative structure could be enhanced",
    "Character development needs improvement",
    "Pacing and flow optimization needed",
)

# Gas estimates for derivative complexity
BASE_DERIVATIVE_GAS = 200_000
CUSTOM_LICENSE_GAS = 100_000
COMPLEX_TYPE_GAS = 150_000
LOW_SIMILARITY_THRESHOLD = 0.3

INHERITANCE_PLATFORM_FEE = 5


class RegistrationStage(Enum):
    """Stages of a single derivative registration."""

    VALIDATING = "validating"
    SCORING_SIMILARITY = "scoring_similarity"
    RESOLVING_LICENSE = "resolving_license"
    REGISTERING_IP = "registering_ip"
    REGISTERING_RELATIONSHIP = "registering_relationship"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class DerivativeRegistrationRequest:
    """A caller's request to register a derivative work."""

    parent_ip_id: str
    parent_chapter_id: str
    derivative_content: ChapterContent
    derivative_type: str = "other"
    parent_license_terms_id: str | None = None
    similarity_score: float | None = None
    inherit_parent_license: bool = False
    custom_license_terms_id: str | None = None
    attribution_text: str = ""
    creator_notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DerivativeRegistrationRequest":
        """
        Parse a camelCase request body.

        Raises:
            ValidationError: If the body is not an object or lacks content
        """
        if not isinstance(data, dict):
            raise ValidationError("Registration request must be an object")
        if not isinstance(data.get("derivativeContent"), dict):
            raise ValidationError("derivativeContent is required")

        score = data.get("similarityScore")
        return cls(
            parent_ip_id=str(data.get("parentIpId") or ""),
            parent_chapter_id=str(data.get("parentChapterId") or ""),
            derivative_content=ChapterContent.from_dict(data["derivativeContent"]),
            derivative_type=data.get("derivativeType", "other"),
            parent_license_terms_id=data.get("parentLicenseTermsId"),
            similarity_score=float(score) if score is not None else None,
            inherit_parent_license=bool(data.get("inheritParentLicense", False)),
            custom_license_terms_id=data.get("customLicenseTermsId"),
            attribution_text=data.get("attributionText", ""),
            creator_notes=data.get("creatorNotes"),
        )


@dataclass
class QualityComparison:
    parent_quality: float
    derivative_quality: float
    improvement_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = {
            "parentQuality": self.parent_quality,
            "derivativeQuality": self.derivative_quality,
        }
        if self.improvement_areas:
            result["improvementAreas"] = list(self.improvement_areas)
        return result


@dataclass
class RevenueProjection:
    estimated_parent_royalty: float
    estimated_derivative_revenue: float
    license_inheritance: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimatedParentRoyalty": self.estimated_parent_royalty,
            "estimatedDerivativeRevenue": self.estimated_derivative_revenue,
            "licenseInheritance": self.license_inheritance,
        }


@dataclass
class DerivativeRegistrationResult(OperationResult):
    stage: RegistrationStage = RegistrationStage.VALIDATING
    derivative_ip_id: str | None = None
    transaction_hash: str | None = None
    parent_ip_id: str | None = None
    license_terms_id: str | None = None
    similarity_score: float | None = None
    quality_comparison: QualityComparison | None = None
    revenue_projection: RevenueProjection | None = None
    registration_time: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result["stage"] = self.stage.value
        if self.derivative_ip_id:
            result["derivativeIpId"] = self.derivative_ip_id
        if self.success:
            result.update(
                {
                    "transactionHash": self.transaction_hash,
                    "parentChildRelationship": {
                        "parentIpId": self.parent_ip_id,
                        "childIpId": self.derivative_ip_id,
                        "licenseTermsId": self.license_terms_id,
                    },
                    "similarityScore": self.similarity_score,
                    "qualityComparison": self.quality_comparison.to_dict() if self.quality_comparison else None,
                    "revenueProjection": self.revenue_projection.to_dict() if self.revenue_projection else None,
                }
            )
        result["registrationTime"] = self.registration_time
        return result


@dataclass
class LicenseInheritanceResult(OperationResult):
    parent_ip_id: str = ""
    parent_license_terms_id: str | None = None
    parent_license_tier: str | None = None
    can_inherit: bool = False
    inheritance_conditions: list[str] = field(default_factory=list)
    suggested_license_terms_id: str | None = None
    parent_royalty_percentage: int = 0
    derivative_royalty_share: int = 0
    platform_fee: int = INHERITANCE_PLATFORM_FEE

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result["parentIpId"] = self.parent_ip_id
        if self.success:
            result.update(
                {
                    "parentLicenseTermsId": self.parent_license_terms_id,
                    "parentLicenseTier": self.parent_license_tier,
                    "canInherit": self.can_inherit,
                    "inheritanceConditions": list(self.inheritance_conditions),
                    "suggestedLicenseTermsId": self.suggested_license_terms_id,
                    "economicImplications": {
                        "parentRoyaltyPercentage": self.parent_royalty_percentage,
                        "derivativeRoyaltyShare": self.derivative_royalty_share,
                        "platformFee": self.platform_fee,
                    },
                }
            )
        return result


@dataclass
class DerivativeComplexity:
    complexity: str
    factors: list[str]
    estimated_gas_cost: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "complexity": self.complexity,
            "factors": list(self.factors),
            "estimatedGasCost": self.estimated_gas_cost,
        }


class _StageFailure(Exception):
    """Internal: stops the workflow with a prepared result."""

    def __init__(self, result: DerivativeRegistrationResult):
        super().__init__(result.error)
        self.result = result


# =============================================================================
# Helpers
# =============================================================================


def validate_derivative_type(derivative_type: str) -> bool:
    return derivative_type in DERIVATIVE_TYPES


def suggest_license_tier(metadata: ChapterMetadata) -> str:
    """Tier for a derivative that neither inherits nor names license terms."""
    if metadata.originality_score >= 80 and metadata.quality_score >= 75 and metadata.commercial_rights:
        return "exclusive"
    if metadata.quality_score >= 60 and metadata.commercial_rights:
        return "premium"
    return "free"


def calculate_derivative_complexity(request: DerivativeRegistrationRequest) -> DerivativeComplexity:
    """Rough complexity class and gas estimate for a registration."""
    factors = []
    complexity = "simple"
    gas = BASE_DERIVATIVE_GAS

    if not request.inherit_parent_license:
        factors.append("Custom license creation required")
        complexity = "moderate"
        gas += CUSTOM_LICENSE_GAS

    if request.derivative_type in ("adaptation", "translation"):
        factors.append("Complex derivative type requiring additional validation")
        complexity = "complex"
        gas += COMPLEX_TYPE_GAS

    if request.similarity_score is not None and request.similarity_score < LOW_SIMILARITY_THRESHOLD:
        factors.append("Low similarity score may require manual review")
        complexity = "complex"

    return DerivativeComplexity(complexity=complexity, factors=factors, estimated_gas_cost=gas)


def inheritance_conditions(info: LicenseTermsInfo, share_alike: bool) -> list[str]:
    if info.conditions:
        return list(info.conditions)

    conditions = ["Attribution required"]
    if info.commercial_use:
        conditions.append("Commercial use allowed")
    if share_alike:
        conditions.append("Share-alike terms")
    return conditions


# =============================================================================
# Service
# =============================================================================


class DerivativeRegistrationService:
    """
    Orchestrates derivative registration over the ledger, record store,
    licensing service, and similarity service.

    Usage:
        service = DerivativeRegistrationService(registry, ledger, records, licensing)
        result = service.register_derivative(request)
        if result.success:
            print(result.derivative_ip_id)
    """

    def __init__(
        self,
        registry: LicenseRegistry,
        ledger: LedgerClient,
        records: IPRecordStore,
        licensing: LicensingService,
        similarity: SimilarityService | None = None,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], None] = time.sleep,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.registry = registry
        self.ledger = ledger
        self.records = records
        self.licensing = licensing
        self.similarity = similarity
        self.metrics = metrics or MetricsCollector()
        self.sleep = sleep
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    # =========================================================================
    # Registration
    # =========================================================================

    def register_derivative(self, request: DerivativeRegistrationRequest) -> DerivativeRegistrationResult:
        """
        Register a derivative work against its parent.

        Returns:
            DerivativeRegistrationResult; check success, error_kind, warnings
        """
        with LoggingContext(parent_ip_id=request.parent_ip_id), self.metrics.timer(
            "derivative_registration_ms"
        ):
            try:
                result = self._run(request)
            except _StageFailure as failure:
                result = failure.result
            except EngineError as e:
                result = DerivativeRegistrationResult.failure(e, stage=RegistrationStage.FAILED)
            except Exception as e:
                logger.error("Unexpected error during derivative registration", exc_info=True)
                result = DerivativeRegistrationResult(
                    success=False,
                    error=f"Unexpected error: {e}",
                    error_kind="internal",
                    stage=RegistrationStage.FAILED,
                )

        outcome = "success" if result.success else (result.error_kind or "failure")
        self.metrics.increment("derivative_registrations_total", labels={"outcome": outcome})
        if not result.success:
            logger.warning("Derivative registration failed: %s", result.error)
        return result

    def _fail(
        self,
        stage: RegistrationStage,
        error: EngineError,
        warnings: list[str],
        **kwargs,
    ) -> _StageFailure:
        logger.info("Registration stopped at %s: %s", stage.value, error.message)
        return _StageFailure(
            DerivativeRegistrationResult(
                success=False,
                error=error.message,
                error_kind=error.kind,
                stage=stage,
                warnings=warnings,
                **kwargs,
            )
        )

    def _run(self, request: DerivativeRegistrationRequest) -> DerivativeRegistrationResult:
        warnings: list[str] = []
        content = request.derivative_content

        logger.info(
            "Registering %s derivative '%s' of %s",
            request.derivative_type,
            content.title,
            request.parent_ip_id,
        )

        # Validating
        stage = RegistrationStage.VALIDATING
        if not request.parent_ip_id or len(request.parent_ip_id) < MIN_PARENT_ID_LENGTH:
            raise self._fail(stage, ValidationError("Invalid parent IP ID format"), warnings)
        if not validate_derivative_type(request.derivative_type):
            raise self._fail(
                stage,
                ValidationError(f"Invalid derivative type: {request.derivative_type}"),
                warnings,
            )
        if request.similarity_score is not None and not 0 <= request.similarity_score <= 1:
            raise self._fail(stage, ValidationError("Similarity score must be between 0 and 1"), warnings)
        if not content.story_id.strip() or content.chapter_number < 1:
            raise self._fail(
                stage, ValidationError("Derivative content requires a storyId and chapterNumber"), warnings
            )

        parent_chapter = self._load_parent_chapter(request.parent_chapter_id)

        # ScoringSimilarity
        stage = RegistrationStage.SCORING_SIMILARITY
        logger.debug("Registration entering %s", stage.value)
        similarity_score = request.similarity_score
        if similarity_score is None:
            similarity_score = self._score_similarity(content, parent_chapter, warnings)

        # ResolvingLicense
        stage = RegistrationStage.RESOLVING_LICENSE
        try:
            license_terms_id, license_tier = self._resolve_license(request, parent_chapter)
        except EngineError as e:
            raise self._fail(stage, e, warnings, similarity_score=similarity_score) from e

        # RegisteringIP
        stage = RegistrationStage.REGISTERING_IP
        ip_result = self.licensing.register_chapter_ip(content)
        warnings.extend(ip_result.warnings)
        if not ip_result.success:
            raise _StageFailure(
                DerivativeRegistrationResult(
                    success=False,
                    error=f"IP registration failed: {ip_result.error}",
                    error_kind=ip_result.error_kind,
                    stage=stage,
                    warnings=warnings,
                    license_terms_id=license_terms_id,
                    similarity_score=similarity_score,
                )
            )
        child_ip_id = ip_result.ip_asset_id

        # RegisteringRelationship
        stage = RegistrationStage.REGISTERING_RELATIONSHIP
        try:
            receipt = self._with_retry(
                "register_derivative",
                lambda: self.ledger.register_derivative(
                    child_ip_id, [request.parent_ip_id], [license_terms_id]
                ),
            )
        except Exception as e:
            ledger_error = LedgerError.from_exception(e)
            warnings.append(
                f"IP asset {child_ip_id} was registered but the derivative link was not recorded"
            )
            raise self._fail(
                stage,
                ledger_error,
                warnings,
                derivative_ip_id=child_ip_id,
                license_terms_id=license_terms_id,
                similarity_score=similarity_score,
            ) from e

        relationship = DerivativeRelationship(
            ip_id=child_ip_id,
            parent_ip_id=request.parent_ip_id,
            parent_chapter_id=request.parent_chapter_id,
            license_terms_id=license_terms_id,
            transaction_hash=receipt.tx_hash,
            derivative_type=request.derivative_type,
            similarity_score=similarity_score,
            attribution_text=request.attribution_text,
            inherited_license=request.inherit_parent_license,
            creator_address=content.metadata.author_address,
            title=content.title,
            quality_score=content.metadata.quality_score,
            license_tier=license_tier,
            creator_notes=request.creator_notes,
        )
        try:
            self.records.save_relationship(relationship)
        except StorageError as e:
            warning = PersistenceWarning(f"derivatives/{child_ip_id}.json", e)
            logger.warning(warning.message)
            self.metrics.increment("persistence_warnings_total")
            warnings.append(warning.message)

        logger.info("Derivative %s linked to %s (tx=%s)", child_ip_id, request.parent_ip_id, receipt.tx_hash)

        return DerivativeRegistrationResult(
            success=True,
            stage=RegistrationStage.COMPLETED,
            derivative_ip_id=child_ip_id,
            transaction_hash=receipt.tx_hash,
            parent_ip_id=request.parent_ip_id,
            license_terms_id=license_terms_id,
            similarity_score=similarity_score,
            quality_comparison=self.compare_quality(parent_chapter, content.metadata),
            revenue_projection=self.project_revenue(request, parent_chapter),
            warnings=warnings,
        )

    def _load_parent_chapter(self, chapter_id: str) -> dict[str, Any] | None:
        if not chapter_id:
            return None
        try:
            return self.records.get_chapter(chapter_id)
        except StorageError as e:
            logger.warning("Could not read parent chapter %s: %s", chapter_id, e)
            return None

    def _score_similarity(
        self, content: ChapterContent, parent_chapter: dict[str, Any] | None, warnings: list[str]
    ) -> float:
        parent_text = (parent_chapter or {}).get("content")
        if self.similarity is None or not parent_text or not content.content:
            reason = "no similarity service" if self.similarity is None else "content unavailable"
            logger.warning("Similarity analysis skipped (%s), using neutral score", reason)
            warnings.append(f"Similarity analysis skipped ({reason}); neutral score used")
            return NEUTRAL_SIMILARITY

        try:
            result = self.similarity.analyze(parent_text, content.content)
        except SimilarityError as e:
            logger.warning("Similarity analysis failed, using neutral score: %s", e)
            warnings.append(f"Similarity analysis failed ({e}); neutral score used")
            return NEUTRAL_SIMILARITY
        except Exception as e:
            logger.warning(
                "Similarity service raised %s, using neutral score", type(e).__name__, exc_info=True
            )
            warnings.append(f"Similarity analysis failed ({e}); neutral score used")
            return NEUTRAL_SIMILARITY

        logger.debug("Similarity score %.3f via %s", result.similarity_score, result.method)
        return result.similarity_score

    def _with_retry(self, operation_name: str, operation: Callable[[], Any]) -> Any:
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.metrics.increment("ledger_retries_total", labels={"operation": operation_name})

        return execute_with_retry_strategy(operation, sleep=self.sleep, on_retry=on_retry)

    def _resolve_license(
        self, request: DerivativeRegistrationRequest, parent_chapter: dict[str, Any] | None
    ) -> tuple[str, str | None]:
        """
        License terms id and tier for the derivative.

        The tier is None when inherited terms come without one.

        Raises:
            UnsupportedOperationError: If the parent's terms cannot be looked up
            LedgerError: If the lookup failed after retries
            ValidationError: If the parent does not allow derivatives
            EngineError: If new terms could not be created
        """
        if request.inherit_parent_license:
            if request.parent_license_terms_id:
                return request.parent_license_terms_id, (parent_chapter or {}).get("licenseTier")
            try:
                info = self._with_retry(
                    "get_license_terms", lambda: self.ledger.get_license_terms(request.parent_ip_id)
                )
            except EngineError:
                raise
            except Exception as e:
                raise LedgerError.from_exception(e) from e
            if not info.derivatives_allowed:
                raise ValidationError(
                    "Parent license does not allow derivatives",
                    {"parentIpId": request.parent_ip_id, "tier": info.tier},
                )
            return info.license_terms_id, info.tier

        if request.custom_license_terms_id:
            return request.custom_license_terms_id, request.derivative_content.metadata.preferred_license_tier

        tier_name = suggest_license_tier(request.derivative_content.metadata)
        terms = self.licensing.create_chapter_license_terms(tier_name)
        if not terms.success:
            raise LedgerError(
                f"Failed to create {tier_name} license terms: {terms.error}",
                code=ErrorCode.UNKNOWN_ERROR.value,
            )
        return terms.license_terms_id, tier_name

    # =========================================================================
    # Projections
    # =========================================================================

    def project_revenue(
        self, request: DerivativeRegistrationRequest, parent_chapter: dict[str, Any] | None
    ) -> RevenueProjection:
        tier_name = (parent_chapter or {}).get("licenseTier") or DEFAULT_PARENT_TIER
        if not self.registry.has_tier(tier_name):
            tier_name = DEFAULT_PARENT_TIER
        royalty_percentage = self.registry.get_tier(tier_name).royalty_percentage

        base_revenue = request.derivative_content.metadata.quality_score * REVENUE_PER_QUALITY_POINT
        parent_royalty = base_revenue * royalty_percentage / 100
        return RevenueProjection(
            estimated_parent_royalty=parent_royalty,
            estimated_derivative_revenue=base_revenue - parent_royalty,
            license_inheritance=request.inherit_parent_license,
        )

    @staticmethod
    def compare_quality(parent_chapter: dict[str, Any] | None, metadata: ChapterMetadata) -> QualityComparison:
        parent_quality = (parent_chapter or {}).get("qualityScore")
        if parent_quality is None:
            parent_quality = DEFAULT_PARENT_QUALITY
        derivative_quality = metadata.quality_score
        improvement_areas = list(IMPROVEMENT_AREAS) if derivative_quality < parent_quality else []
        return QualityComparison(parent_quality, derivative_quality, improvement_areas)

    # =========================================================================
    # Bulk
    # =========================================================================

    def bulk_register_derivatives(
        self, requests: list[DerivativeRegistrationRequest]
    ) -> list[DerivativeRegistrationResult]:
        """
        Register many derivatives in parallel batches.

        Returns one result per request, in request order. A failed item
        never aborts its batch.
        """
        total = len(requests)
        batches = (total + self.batch_size - 1) // self.batch_size
        logger.info("Bulk registering %d derivatives in %d batches", total, batches)

        results: list[DerivativeRegistrationResult] = []
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for number, start in enumerate(range(0, total, self.batch_size), start=1):
                batch = requests[start : start + self.batch_size]
                logger.debug("Processing batch %d/%d", number, batches)

                futures = [executor.submit(self.register_derivative, request) for request in batch]
                for future in futures:
                    try:
                        results.append(future.result())
                    except Exception as e:
                        logger.error("Bulk item raised unexpectedly", exc_info=True)
                        results.append(
                            DerivativeRegistrationResult(
                                success=False,
                                error=str(e),
                                error_kind="internal",
                                stage=RegistrationStage.FAILED,
                            )
                        )

                if start + self.batch_size < total:
                    self.sleep(self.batch_delay)

        successful = sum(1 for r in results if r.success)
        logger.info("Bulk registration complete: %d/%d successful", successful, total)
        self.metrics.set_gauge("bulk_last_success_ratio", successful / total if total else 1.0)
        return results

    # =========================================================================
    # License Inheritance
    # =========================================================================

    def analyze_license_inheritance(self, parent_ip_id: str, derivative_creator: str) -> LicenseInheritanceResult:
        """
        Whether a derivative can inherit its parent's license, and what it costs.

        When the parent does not allow derivatives, premium terms are created
        as the suggested alternative.
        """
        try:
            info = self._with_retry("get_license_terms", lambda: self.ledger.get_license_terms(parent_ip_id))
        except EngineError as e:
            return LicenseInheritanceResult.failure(e, parent_ip_id=parent_ip_id)
        except Exception as e:
            ledger_error = LedgerError.from_exception(e)
            return LicenseInheritanceResult.failure(ledger_error, parent_ip_id=parent_ip_id)

        share_alike = False
        royalty_percentage = info.royalty_percentage
        if self.registry.has_tier(info.tier):
            tier = self.registry.get_tier(info.tier)
            share_alike = tier.share_alike
            royalty_percentage = tier.royalty_percentage

        can_inherit = info.derivatives_allowed
        suggested_terms_id = None
        warnings = []
        if not can_inherit:
            terms = self.licensing.create_chapter_license_terms(DEFAULT_PARENT_TIER)
            if terms.success:
                suggested_terms_id = terms.license_terms_id
            else:
                warnings.append(f"Could not create suggested license terms: {terms.error}")

        logger.info(
            "License inheritance for %s by %s: canInherit=%s", parent_ip_id, derivative_creator, can_inherit
        )
        return LicenseInheritanceResult(
            success=True,
            parent_ip_id=parent_ip_id,
            parent_license_terms_id=info.license_terms_id,
            parent_license_tier=info.tier,
            can_inherit=can_inherit,
            inheritance_conditions=inheritance_conditions(info, share_alike),
            suggested_license_terms_id=suggested_terms_id,
            parent_royalty_percentage=royalty_percentage,
            derivative_royalty_share=100 - royalty_percentage - INHERITANCE_PLATFORM_FEE,
            warnings=warnings,
        )

    # =========================================================================
    # Auto-detection
    # =========================================================================

    def register_derivative_with_auto_detection(
        self,
        derivative_content: ChapterContent,
        derivative_type: str,
        minimum_similarity: float = 0.7,
        max_candidates: int = 5,
    ) -> DerivativeRegistrationResult:
        """Register a derivative against a parent found by content analysis."""
        error = UnsupportedOperationError(
            "register_derivative_with_auto_detection",
            "Automatic parent detection is not supported; register with an explicit parent IP",
        )
        logger.info(
            "Auto-detection requested for '%s' (%s, min similarity %.2f, %d candidates): %s",
            derivative_content.title,
            derivative_type,
            minimum_similarity,
            max_candidates,
            error.message,
        )
        return DerivativeRegistrationResult.failure(error, stage=RegistrationStage.FAILED)

    def get_service_status(self) -> dict[str, Any]:
        return {
            "similarityService": type(self.similarity).__name__ if self.similarity else None,
            "batchSize": self.batch_size,
            "batchDelay": self.batch_delay,
            "derivativeTypes": list(DERIVATIVE_TYPES),
            "features": [
                "registerDerivative",
                "bulkRegisterDerivatives",
                "analyzeLicenseInheritance",
                "derivativeTree",
            ],
        }
