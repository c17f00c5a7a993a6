from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

import anyio.to_thread

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

ModelProgressCallback = Callable[[float, str], None]


class EmbeddingProviderError(RuntimeError):
    """Base exception for embedding provider failures."""


class EmbeddingsNotInitializedError(EmbeddingProviderError):
    """Raised when embeddings are requested before the model is loaded."""


class EmbeddingModelLoadError(EmbeddingProviderError):
    """Raised when the embedding model cannot be loaded."""


class EmbeddingProvider:
    """Interface for services that map text to a fixed-length vector.

    Vector dimensionality is fixed for the lifetime of a provider. Providers
    that need a warm-up step override :meth:`initialize` and ``is_ready``.
    """

    @property
    def is_ready(self) -> bool:
        return True

    @property
    def is_loading(self) -> bool:
        return False

    async def initialize(self, on_progress: ModelProgressCallback | None = None) -> None:
        return None

    async def embed(self, text: str) -> list[float]:  # pragma: no cover
        raise NotImplementedError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns ``0.0`` instead of raising when the lengths differ or either vector
    has zero magnitude, so one malformed vector cannot abort a ranked search.
    """

    if len(a) != len(b):
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b, strict=True):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    if magnitude == 0:
        return 0.0
    return dot / magnitude


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local embedding provider backed by ``sentence-transformers``.

    The model is loaded lazily by :meth:`initialize` and cached on the
    instance. Encoding is CPU-bound, so both loading and encoding run in a
    worker thread to keep the event loop responsive.

    Parameters
    ----------
    model_name:
        Hugging Face model id or local path. Defaults to MiniLM-L6-v2
        (384 dimensions).
    device:
        Optional torch device override (``"cpu"``, ``"cuda"``...).
    """

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL, *, device: str | None = None) -> None:
        self.model_name = model_name
        self._device = device
        self._model: Any = None
        self._load_lock = threading.Lock()
        self._loading = False

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def dimension(self) -> int | None:
        if self._model is None:
            return None
        return int(self._model.get_sentence_embedding_dimension())

    def _load_model(self) -> None:
        # Concurrent initialize() calls queue here; only the first one loads.
        with self._load_lock:
            if self._model is not None:
                return
            self._loading = True
            try:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model %s", self.model_name)
                self._model = SentenceTransformer(self.model_name, device=self._device)
            except Exception as exc:
                raise EmbeddingModelLoadError(
                    f"Failed to load embedding model {self.model_name!r}"
                ) from exc
            finally:
                self._loading = False
        logger.info("Embedding model %s ready", self.model_name)

    async def initialize(self, on_progress: ModelProgressCallback | None = None) -> None:
        if self._model is not None:
            return

        if on_progress:
            on_progress(0.0, "Loading embedding model...")
        await anyio.to_thread.run_sync(self._load_model)
        if on_progress:
            on_progress(100.0, "Model loaded!")

    async def embed(self, text: str) -> list[float]:
        model = self._model
        if model is None:
            raise EmbeddingsNotInitializedError(
                "Embeddings not initialized. Call initialize() first."
            )

        encode = partial(model.encode, text, normalize_embeddings=True, show_progress_bar=False)
        vector = await anyio.to_thread.run_sync(encode)
        return [float(value) for value in vector]
