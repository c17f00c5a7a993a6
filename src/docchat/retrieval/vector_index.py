from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from docchat.retrieval.embeddings import EmbeddingProvider, cosine_similarity
from docchat.retrieval.types import Chunk, IndexedVector, SearchResult

logger = logging.getLogger(__name__)

IndexProgressCallback = Callable[[int, int], None]

DEFAULT_TOP_K = 3


class VectorIndex:
    """In-memory vector index over the chunks of one document.

    Search is an exact linear scan (O(n·d) per query), which is fine for the
    few thousand chunks a single document produces.

    The index holds exactly one document at a time. :meth:`add_documents`
    builds the new vector set off to the side and swaps it in only once every
    chunk has been embedded, so a failed rebuild leaves the previous contents
    searchable. Mutating calls must still be serialized by the caller.
    """

    def __init__(self, embedder: EmbeddingProvider) -> None:
        self._embedder = embedder
        self._lock = threading.RLock()
        self._vectors: list[IndexedVector] = []

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._vectors)

    @property
    def chunks(self) -> list[Chunk]:
        with self._lock:
            return [vector.chunk for vector in self._vectors]

    async def add_documents(
        self,
        chunks: Sequence[Chunk],
        on_progress: IndexProgressCallback | None = None,
    ) -> None:
        """Replace the index contents with embeddings of ``chunks``.

        Embeddings are requested one chunk at a time, in order, and
        ``on_progress(current, total)`` is called after each one completes.
        Any provider error propagates and the previous contents are kept.
        """

        total = len(chunks)
        staged: list[IndexedVector] = []
        for position, chunk in enumerate(chunks, start=1):
            embedding = await self._embedder.embed(chunk.text)
            staged.append(IndexedVector(chunk=chunk, embedding=tuple(embedding)))
            if on_progress:
                on_progress(position, total)

        with self._lock:
            self._vectors = staged
        logger.info("Indexed %d chunks", total)

    async def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[SearchResult]:
        with self._lock:
            vectors = list(self._vectors)

        if not vectors or top_k <= 0:
            return []

        query_embedding = await self._embedder.embed(query)

        scored = [
            SearchResult(
                chunk=vector.chunk,
                score=cosine_similarity(query_embedding, vector.embedding),
            )
            for vector in vectors
        ]
        # sorted() is stable, so ties keep insertion order.
        scored = sorted(scored, key=lambda result: -result.score)
        return scored[:top_k]

    def clear(self) -> None:
        with self._lock:
            self._vectors = []
