from __future__ import annotations

import re

from docchat.retrieval.types import Chunk

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 50

# The overlap hint is expressed in characters; carried-over context is counted
# in words, assuming roughly five characters per word.
_CHARS_PER_WORD = 5


def split_sentences(text: str) -> list[str]:
    """Split on sentence-terminal punctuation, dropping blank fragments."""

    return [sentence.strip() for sentence in _SENTENCE_SPLIT_RE.split(text) if sentence.strip()]


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[Chunk]:
    """Chunk raw document text into overlapping, sentence-aligned passages.

    Sentences are accumulated greedily. A chunk is closed when appending the
    next sentence would push it past ``chunk_size`` characters; the next chunk
    then starts with the trailing ``overlap // 5`` words of the closed one.

    Notes
    -----
    * The size bound is soft: a single sentence longer than ``chunk_size``
      still becomes its own chunk.
    * ``chunk_index`` is dense and zero-based.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    overlap_word_count = overlap // _CHARS_PER_WORD
    chunks: list[Chunk] = []
    current = ""

    def emit(buffer: str) -> None:
        chunks.append(Chunk(text=buffer.strip(), chunk_index=len(chunks)))

    for sentence in split_sentences(text):
        if current and len(f"{current} {sentence}") > chunk_size:
            emit(current)
            words = current.split(" ")
            carried = words[-overlap_word_count:] if overlap_word_count else []
            current = " ".join([*carried, sentence])
        else:
            current = f"{current} {sentence}" if current else sentence

    if current.strip():
        emit(current)

    return chunks
