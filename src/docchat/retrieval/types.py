from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Chunk:
    text: str
    chunk_index: int
    # Page tracking is not wired in yet; every chunk reports page 1.
    page_number: int = 1


@dataclass(frozen=True)
class IndexedVector:
    chunk: Chunk
    embedding: tuple[float, ...]


@dataclass(frozen=True)
class SearchResult:
    chunk: Chunk
    score: float
