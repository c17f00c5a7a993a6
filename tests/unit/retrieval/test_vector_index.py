from __future__ import annotations

import pytest
from conftest import BagOfWordsEmbedder, MappingEmbedder

from docchat.retrieval.types import Chunk
from docchat.retrieval.vector_index import VectorIndex
from docchat.services.text_chunker import chunk_text


def _chunk(index: int, text: str) -> Chunk:
    return Chunk(text=text, chunk_index=index)


@pytest.mark.asyncio
async def test_search_on_empty_index_skips_embedding() -> None:
    embedder = MappingEmbedder({})
    index = VectorIndex(embedder)

    assert await index.search("anything") == []
    assert embedder.calls == []
    assert index.size == 0


@pytest.mark.asyncio
async def test_add_documents_reports_progress_in_order() -> None:
    embedder = MappingEmbedder({})
    index = VectorIndex(embedder)
    progress: list[tuple[int, int]] = []

    chunks = [_chunk(i, f"chunk {i}") for i in range(3)]
    await index.add_documents(chunks, lambda current, total: progress.append((current, total)))

    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert embedder.calls == ["chunk 0", "chunk 1", "chunk 2"]
    assert index.size == 3
    assert index.chunks == chunks


@pytest.mark.asyncio
async def test_search_ranks_by_cosine_similarity() -> None:
    embedder = MappingEmbedder(
        {
            "north": [0.0, 1.0],
            "east": [1.0, 0.0],
            "north-east": [1.0, 1.0],
            "query": [0.1, 1.0],
        }
    )
    index = VectorIndex(embedder)
    await index.add_documents([_chunk(0, "east"), _chunk(1, "north-east"), _chunk(2, "north")])

    results = await index.search("query", top_k=3)

    assert [r.chunk.text for r in results] == ["north", "north-east", "east"]
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == pytest.approx(1.0 / (1.01**0.5))


@pytest.mark.asyncio
async def test_search_never_exceeds_top_k(bag_of_words_embedder: BagOfWordsEmbedder) -> None:
    index = VectorIndex(bag_of_words_embedder)
    text = " ".join(f"Fact {i} concerns the river delta number {i}." for i in range(30))
    await index.add_documents(chunk_text(text, chunk_size=100, overlap=10))

    assert index.size > 5
    for top_k in (1, 3, 5):
        results = await index.search("river delta", top_k=top_k)
        assert len(results) == top_k
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    assert await index.search("river delta", top_k=0) == []
    assert len(await index.search("river delta", top_k=1000)) == index.size


@pytest.mark.asyncio
async def test_ties_keep_insertion_order() -> None:
    embedder = MappingEmbedder({}, default=[1.0, 0.0])
    index = VectorIndex(embedder)
    await index.add_documents([_chunk(i, f"same {i}") for i in range(4)])

    results = await index.search("q", top_k=4)

    assert [r.chunk.chunk_index for r in results] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_dimension_mismatch_scores_zero_instead_of_failing() -> None:
    embedder = MappingEmbedder({"short": [1.0], "long": [1.0, 0.0], "q": [1.0, 0.0]})
    index = VectorIndex(embedder)
    await index.add_documents([_chunk(0, "short"), _chunk(1, "long")])

    results = await index.search("q", top_k=2)

    assert results[0].chunk.text == "long"
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == 0.0


@pytest.mark.asyncio
async def test_add_documents_replaces_previous_contents() -> None:
    embedder = MappingEmbedder({})
    index = VectorIndex(embedder)
    await index.add_documents([_chunk(0, "old a"), _chunk(1, "old b")])
    await index.add_documents([_chunk(0, "new")])

    assert index.size == 1
    assert [c.text for c in index.chunks] == ["new"]


@pytest.mark.asyncio
async def test_failed_rebuild_keeps_previous_contents() -> None:
    embedder = BagOfWordsEmbedder(fail_after=3)
    index = VectorIndex(embedder)
    await index.add_documents([_chunk(0, "first old"), _chunk(1, "second old")])

    with pytest.raises(RuntimeError):
        await index.add_documents([_chunk(0, "new a"), _chunk(1, "new b")])

    assert [c.text for c in index.chunks] == ["first old", "second old"]


@pytest.mark.asyncio
async def test_clear_empties_index() -> None:
    index = VectorIndex(MappingEmbedder({}))
    await index.add_documents([_chunk(0, "a")])

    index.clear()

    assert index.size == 0
    assert await index.search("a") == []
