"""
ChapterIP - Content Similarity
Scores how close a derivative's text is to its parent's.

Similarity is advisory: callers fall back to a neutral score when the
service is unavailable.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np
import requests

logger = logging.getLogger(__name__)

# Import SentenceTransformer with error handling for optional dependency
try:
    from sentence_transformers import SentenceTransformer
    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SentenceTransformer = None
    SENTENCE_TRANSFORMERS_AVAILABLE = False

DEFAULT_MODEL = "all-MiniLM-L6-v2"
DEFAULT_TIMEOUT = 15


class SimilarityError(Exception):
    """Exception raised when similarity analysis fails."""
    pass


class ModelLoadError(SimilarityError):
    """Exception raised when the embedding model fails to load."""
    pass


@dataclass
class SimilarityResult:
    similarity_score: float
    method: str

    def to_dict(self) -> dict[str, Any]:
        return {"similarityScore": self.similarity_score, "method": self.method}


class SimilarityService(ABC):
    """Interface for content similarity analysis."""

    @abstractmethod
    def analyze(self, content_a: str, content_b: str) -> SimilarityResult:
        """
        Score the similarity of two text bodies.

        Returns:
            SimilarityResult with a score in [0, 1]

        Raises:
            SimilarityError: If the analysis cannot be performed
        """
        pass


class HTTPSimilarityClient(SimilarityService):
    """Calls an external content-analysis endpoint."""

    def __init__(self, endpoint: str | None = None, timeout: int = DEFAULT_TIMEOUT):
        endpoint = endpoint or os.getenv("CHAPTERIP_SIMILARITY_ENDPOINT", "")
        if not endpoint:
            raise SimilarityError("CHAPTERIP_SIMILARITY_ENDPOINT is not configured")
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def analyze(self, content_a: str, content_b: str) -> SimilarityResult:
        try:
            response = self.session.post(
                f"{self.endpoint}/analyze",
                json={"contentA": content_a, "contentB": content_b},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise SimilarityError(f"Similarity request failed: {e!s}") from e
        except ValueError as e:
            raise SimilarityError(f"Invalid similarity response: {e!s}") from e

        score = data.get("similarityScore")
        if not isinstance(score, (int, float)):
            raise SimilarityError("Similarity response missing similarityScore")

        return SimilarityResult(similarity_score=min(max(float(score), 0.0), 1.0), method="remote")


class EmbeddingSimilarityService(SimilarityService):
    """
    Cosine similarity of sentence-transformer embeddings.

    Raises:
        ModelLoadError: If sentence-transformers is missing or the model cannot load
    """

    def __init__(self, model_name: str = DEFAULT_MODEL):
        if not SENTENCE_TRANSFORMERS_AVAILABLE:
            raise ModelLoadError(
                "sentence-transformers library is not installed. "
                "Install with: pip install chapterip[embeddings]"
            )

        self.model_name = model_name
        try:
            logger.info("Loading sentence transformer model: %s", model_name)
            self.model = SentenceTransformer(model_name)
        except OSError as e:
            raise ModelLoadError(
                f"Failed to load sentence transformer model '{model_name}': {e!s}"
            ) from e

    def analyze(self, content_a: str, content_b: str) -> SimilarityResult:
        if not content_a or not content_b:
            raise SimilarityError("Both texts are required for similarity analysis")

        embeddings = self.model.encode([content_a, content_b], convert_to_numpy=True)
        a, b = embeddings[0], embeddings[1]
        norm = float(np.linalg.norm(a) * np.linalg.norm(b))
        if norm == 0:
            return SimilarityResult(similarity_score=0.0, method="embedding")

        cosine = float(np.dot(a, b) / norm)
        # Map cosine [-1, 1] onto [0, 1]
        score = float(np.clip((cosine + 1) / 2, 0.0, 1.0))
        return SimilarityResult(similarity_score=score, method="embedding")


def get_similarity_service(endpoint: str | None = None) -> SimilarityService | None:
    """
    Pick a similarity backend.

    Uses the HTTP endpoint when configured, otherwise the embedding model
    when available. Returns None when neither can be used.
    """
    endpoint = endpoint if endpoint is not None else os.getenv("CHAPTERIP_SIMILARITY_ENDPOINT", "")
    if endpoint:
        return HTTPSimilarityClient(endpoint)

    if SENTENCE_TRANSFORMERS_AVAILABLE:
        try:
            return EmbeddingSimilarityService()
        except ModelLoadError as e:
            logger.warning("Embedding similarity unavailable: %s", e)
            return None

    logger.warning("No similarity service configured; derivatives will use the neutral score")
    return None
