from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping, Sequence

import pytest

from docchat.retrieval.embeddings import EmbeddingProvider, EmbeddingsNotInitializedError

_WORD_RE = re.compile(r"[a-z0-9]+")


class MappingEmbedder(EmbeddingProvider):
    """Returns fixed vectors per text and counts calls."""

    def __init__(
        self,
        vectors: Mapping[str, Sequence[float]],
        *,
        default: Sequence[float] = (0.0, 0.0, 1.0),
    ) -> None:
        self._vectors = {text: list(vector) for text, vector in vectors.items()}
        self._default = list(default)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return list(self._vectors.get(text, self._default))


class BagOfWordsEmbedder(EmbeddingProvider):
    """Deterministic hashed bag-of-words vectors for end-to-end tests."""

    def __init__(self, *, dimension: int = 64, fail_after: int | None = None) -> None:
        self._dimension = dimension
        self._fail_after = fail_after
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        if self._fail_after is not None and len(self.calls) >= self._fail_after:
            raise EmbeddingsNotInitializedError("embedding backend went away")
        self.calls.append(text)
        vector = [0.0] * self._dimension
        for word in _WORD_RE.findall(text.lower()):
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0
        return vector


class UnreadyEmbedder(EmbeddingProvider):
    """Provider that never finishes loading."""

    @property
    def is_ready(self) -> bool:
        return False

    async def embed(self, text: str) -> list[float]:
        raise EmbeddingsNotInitializedError("Embeddings not initialized. Call initialize() first.")


@pytest.fixture
def mitochondria_embedder() -> MappingEmbedder:
    return MappingEmbedder(
        {
            "The mitochondria is the powerhouse of the cell.": [1.0, 0.0, 0.0],
            "What produces energy in cells?": [0.9, 0.1, 0.0],
            "cell energy production": [0.9, 0.1, 0.0],
            "Mitochondria produce energy": [0.8, 0.2, 0.0],
        }
    )


@pytest.fixture
def bag_of_words_embedder() -> BagOfWordsEmbedder:
    return BagOfWordsEmbedder()
