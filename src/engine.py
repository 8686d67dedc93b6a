"""
ChapterIP - Engine Wiring

Builds every service from one EngineConfig. Collaborators (ledger client,
object store, similarity service) can be passed in; anything not passed is
built from the configuration.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from config import EngineConfig
from derivative_registration import DerivativeRegistrationService
from derivative_tree import DerivativeTreeService
from ip_records import IPRecordStore
from ledger_client import LedgerClient
from license_tiers import LicenseRegistry
from licensing import LicensingService
from monitoring.metrics import MetricsCollector
from royalty_distribution import DerivativeSplitStrategy, RoyaltySharingService
from similarity import EmbeddingSimilarityService, HTTPSimilarityClient, SimilarityService
from storage import ObjectStore, get_object_store

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """The wired set of services for one process."""

    config: EngineConfig
    registry: LicenseRegistry
    ledger: LedgerClient
    store: ObjectStore
    records: IPRecordStore
    licensing: LicensingService
    royalties: RoyaltySharingService
    derivatives: DerivativeRegistrationService
    trees: DerivativeTreeService
    metrics: MetricsCollector

    def status(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "storage": self.store.get_info(),
            "licensing": self.licensing.get_service_status(),
            "derivatives": self.derivatives.get_service_status(),
        }


def build_similarity_service(config: EngineConfig) -> SimilarityService | None:
    """
    Similarity backend named by the configuration, if any.

    Raises:
        ModelLoadError: If an embedding model is configured but cannot load
    """
    if config.similarity_endpoint:
        return HTTPSimilarityClient(config.similarity_endpoint)
    if config.similarity_model:
        return EmbeddingSimilarityService(config.similarity_model)
    return None


def create_engine(
    config: EngineConfig | None = None,
    ledger: LedgerClient | None = None,
    store: ObjectStore | None = None,
    similarity: SimilarityService | None = None,
    registry: LicenseRegistry | None = None,
    metrics: MetricsCollector | None = None,
    split_strategy: DerivativeSplitStrategy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    """
    Wire the engine.

    The tier registry is configured from the environment exactly once here;
    a registry passed in that is already configured is used as-is.

    Args:
        config: Engine configuration (default: EngineConfig.from_env())
        ledger: Ledger client (default: LedgerClient from config)
        store: Object store (default: backend from config)
        similarity: Similarity service (default: from config, may be None)
        registry: Tier registry (default: built-in tiers)
        metrics: Metrics collector (default: a new collector)
        split_strategy: Derivative split strategy for royalty sharing
        sleep: Sleep function for retry backoff and batch delays
    """
    config = config or EngineConfig.from_env()
    metrics = metrics or MetricsCollector()

    registry = registry or LicenseRegistry.default()
    if not registry.environment_configured:
        registry = registry.configured_from_environment(config.policy_env)

    if ledger is None:
        ledger = LedgerClient(
            endpoint=config.ledger_endpoint or None,
            secret_key=config.ledger_secret,
            verify_ssl=config.ledger_verify_ssl,
        )
        if not config.ledger_secret:
            logger.warning("CHAPTERIP_LEDGER_SECRET not set; ledger requests will be unsigned")

    if store is None:
        store = get_object_store(
            config.storage_backend, config.storage_dir, config.storage_public_url
        )

    if similarity is None:
        similarity = build_similarity_service(config)

    records = IPRecordStore(store)
    licensing = LicensingService(registry, ledger, records, metrics=metrics, sleep=sleep)

    engine = Engine(
        config=config,
        registry=registry,
        ledger=ledger,
        store=store,
        records=records,
        licensing=licensing,
        royalties=RoyaltySharingService(
            records,
            registry,
            ledger,
            split_strategy=split_strategy,
            metrics=metrics,
            sleep=sleep,
        ),
        derivatives=DerivativeRegistrationService(
            registry,
            ledger,
            records,
            licensing,
            similarity=similarity,
            metrics=metrics,
            sleep=sleep,
            batch_size=config.bulk_batch_size,
            batch_delay=config.bulk_batch_delay,
        ),
        trees=DerivativeTreeService(records),
        metrics=metrics,
    )

    logger.info(
        "Engine ready (storage=%s, similarity=%s)",
        config.storage_backend,
        type(similarity).__name__ if similarity else "none",
    )
    return engine
