"""
Tests for engine configuration and wiring.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from config import EngineConfig
from engine import build_similarity_service, create_engine
from errors import ValidationError
from ledger_client import MockLedgerClient
from similarity import HTTPSimilarityClient
from storage import FileObjectStore, MemoryObjectStore

LRP_ADDRESS = "0x2222222222222222222222222222222222222222"


class TestEngineConfig:
    """Tests for EngineConfig.from_env."""

    def test_defaults(self):
        config = EngineConfig.from_env({})
        assert config.storage_backend == "memory"
        assert config.bulk_batch_size == 5
        assert config.bulk_batch_delay == 1.0
        assert config.ledger_verify_ssl is True
        assert config.api_key is None

    def test_reads_environment(self):
        config = EngineConfig.from_env(
            {
                "CHAPTERIP_LEDGER_ENDPOINT": "https://ledger.test",
                "CHAPTERIP_LEDGER_SECRET": "secret",
                "CHAPTERIP_LEDGER_VERIFY_SSL": "false",
                "STORAGE_BACKEND": "FILE",
                "BULK_BATCH_SIZE": "10",
                "BULK_BATCH_DELAY": "0.25",
                "CHAPTERIP_API_KEY": "key",
                "LOG_LEVEL": "debug",
                "LOG_FORMAT": "JSON",
                "STORY_LRP_ROYALTY_POLICY": LRP_ADDRESS,
                "UNRELATED": "x",
            }
        )
        assert config.ledger_endpoint == "https://ledger.test"
        assert config.ledger_verify_ssl is False
        assert config.storage_backend == "file"
        assert config.bulk_batch_size == 10
        assert config.bulk_batch_delay == 0.25
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert dict(config.policy_env) == {"STORY_LRP_ROYALTY_POLICY": LRP_ADDRESS}

    @pytest.mark.parametrize(
        "env",
        [
            {"BULK_BATCH_SIZE": "five"},
            {"BULK_BATCH_DELAY": "soon"},
            {"BULK_BATCH_SIZE": "0"},
            {"BULK_BATCH_DELAY": "-1"},
            {"STORAGE_BACKEND": "s3"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValidationError):
            EngineConfig.from_env(env)

    def test_to_dict_masks_secrets(self):
        data = EngineConfig(ledger_secret="secret", api_key="key").to_dict()
        assert data["ledgerSecretConfigured"] is True
        assert data["apiKeyConfigured"] is True
        assert "secret" not in str(data.values())


class TestCreateEngine:
    """Tests for create_engine."""

    def test_registry_configured_from_policy_env(self):
        config = EngineConfig(policy_env={"STORY_LRP_ROYALTY_POLICY": LRP_ADDRESS})
        engine = create_engine(config, ledger=MockLedgerClient())

        assert engine.registry.environment_configured
        assert engine.registry.get_policy("premium").address == LRP_ADDRESS
        assert engine.licensing.registry is engine.registry
        assert engine.royalties.registry is engine.registry

    def test_store_from_config(self, tmp_path):
        engine = create_engine(
            EngineConfig(storage_backend="file", storage_dir=str(tmp_path)), ledger=MockLedgerClient()
        )
        assert isinstance(engine.store, FileObjectStore)

        engine = create_engine(EngineConfig(), ledger=MockLedgerClient())
        assert isinstance(engine.store, MemoryObjectStore)

    def test_batch_settings(self):
        engine = create_engine(
            EngineConfig(bulk_batch_size=3, bulk_batch_delay=0.5), ledger=MockLedgerClient()
        )
        assert engine.derivatives.batch_size == 3
        assert engine.derivatives.batch_delay == 0.5

    def test_services_share_collaborators(self, engine, ledger, store, metrics):
        assert engine.ledger is ledger
        assert engine.records.store is store
        assert engine.derivatives.records is engine.records
        assert engine.trees.records is engine.records
        assert engine.derivatives.metrics is metrics

    def test_status(self, engine):
        status = engine.status()
        assert status["licensing"]["ledgerConnected"] is True
        assert status["derivatives"]["batchSize"] == 5
        assert status["storage"]["backend_type"] == "MemoryObjectStore"


class TestBuildSimilarityService:
    """Tests for build_similarity_service."""

    def test_none_when_unconfigured(self):
        assert build_similarity_service(EngineConfig()) is None

    def test_http_endpoint(self):
        service = build_similarity_service(EngineConfig(similarity_endpoint="https://sim.test/"))
        assert isinstance(service, HTTPSimilarityClient)
        assert service.endpoint == "https://sim.test"
