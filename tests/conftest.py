"""
Pytest configuration and shared fixtures for ChapterIP tests.

This module provides shared fixtures including:
- In-memory object store and record store
- Mock ledger client with failure injection
- Fake similarity service
- Recording sleep function so retries and batch delays never block
- A fully wired engine and Flask test client
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from config import EngineConfig
from economics import ChapterContent, ChapterMetadata
from engine import create_engine
from ip_records import IPRecordStore
from ledger_client import MockLedgerClient
from license_tiers import LicenseRegistry
from monitoring.metrics import MetricsCollector
from similarity import SimilarityError, SimilarityResult, SimilarityService
from storage import MemoryObjectStore

PARENT_CONTENT = "The lighthouse keeper counted ships until the fog swallowed the harbor."


class FakeSimilarityService(SimilarityService):
    """Returns a fixed score, or raises when told to fail."""

    def __init__(self, score: float = 0.8, error: str | None = None):
        self.score = score
        self.error = error
        self.calls = []

    def analyze(self, content_a, content_b):
        self.calls.append((content_a, content_b))
        if self.error:
            raise SimilarityError(self.error)
        return SimilarityResult(similarity_score=self.score, method="fake")


class RecordingSleep:
    """Sleep replacement that records requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def make_chapter(
    title="The Lighthouse",
    chapter_number=1,
    story_id="story-1",
    content=PARENT_CONTENT,
    **metadata,
) -> ChapterContent:
    """Build a chapter with sensible metadata defaults."""
    defaults = {
        "quality_score": 70,
        "originality_score": 60,
        "commercial_viability": 50,
        "commercial_rights": True,
        "author_address": "0xAuthor000000000000000000000000000000001",
        "author_name": "Test Author",
        "genre": "Mystery",
    }
    defaults.update(metadata)
    return ChapterContent(
        story_id=story_id,
        chapter_number=chapter_number,
        title=title,
        content=content,
        metadata=ChapterMetadata(**defaults),
    )


@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest.fixture
def records(store):
    return IPRecordStore(store)


@pytest.fixture
def ledger():
    return MockLedgerClient()


@pytest.fixture
def registry():
    return LicenseRegistry.default().configured_from_environment({})


@pytest.fixture
def similarity():
    return FakeSimilarityService()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def config():
    return EngineConfig(bulk_batch_size=5, bulk_batch_delay=1.0)


@pytest.fixture
def engine(config, ledger, store, similarity, registry, metrics, sleeper):
    """Engine wired to in-memory collaborators."""
    return create_engine(
        config,
        ledger=ledger,
        store=store,
        similarity=similarity,
        registry=registry,
        metrics=metrics,
        sleep=sleeper,
    )


@pytest.fixture
def parent(engine):
    """A premium parent chapter registered as an IP asset with attached terms."""
    terms = engine.licensing.create_chapter_license_terms("premium")
    assert terms.success
    result = engine.licensing.register_chapter_ip(make_chapter(), terms.license_terms_id)
    assert result.success
    return {
        "ip_id": result.ip_asset_id,
        "chapter_id": "story-1-1",
        "license_terms_id": terms.license_terms_id,
    }


@pytest.fixture
def flask_app(engine):
    """Flask test app around the in-memory engine."""
    from api import create_app

    app = create_app(engine)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
