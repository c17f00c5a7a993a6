from __future__ import annotations

import math
import re

from docchat.retrieval.embeddings import EmbeddingProvider, cosine_similarity
from docchat.retrieval.vector_index import VectorIndex
from docchat.schemas.evaluation import EvaluationResult

REFERENCE_TOP_K = 5
REFERENCE_THRESHOLD = 0.3

_SEMANTIC_WEIGHT = 0.6
_CONCEPT_WEIGHT = 0.4
_MAX_CONCEPTS = 20
_MIN_CONCEPT_LENGTH = 3
_MAX_MISSING_ELEMENTS = 5
_MAX_EXCERPTS = 2
_EXCERPT_CHARS = 200

# ASCII word characters only: "café" becomes "caf".
_NON_WORD_RE = re.compile(r"[^\w\s]", re.ASCII)

_STOP_WORDS = frozenset(
    {
        "that", "this", "with", "from", "have", "been", "were", "they", "their",
        "which", "when", "will", "would", "could", "should", "about", "there",
        "these", "those", "than", "then", "only", "also", "more", "such", "some",
        "very", "just", "being", "other", "into", "through", "during", "before",
        "after", "above", "below", "between", "under", "again", "further", "once",
    }
)  # fmt: skip


def _no_reference_result() -> EvaluationResult:
    return EvaluationResult(
        similarity_percentage=0,
        justification="No relevant reference content found in the document for the given topic.",
        missing_elements=["Unable to find reference material in the uploaded document"],
        reference_excerpts=[],
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def extract_key_concepts(text: str, *, limit: int = _MAX_CONCEPTS) -> list[str]:
    """Extract up to ``limit`` distinct keywords, in first-seen order.

    Words of three characters or fewer and common function words are dropped.
    This is a crude lexical stand-in for real concept extraction.
    """

    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    seen: dict[str, None] = {}
    for word in words:
        if len(word) <= _MIN_CONCEPT_LENGTH or word in _STOP_WORDS:
            continue
        seen.setdefault(word, None)
    return list(seen)[:limit]


def _is_covered(concept: str, candidate_concepts: list[str]) -> bool:
    # Bidirectional substring match is intentionally loose: "cell" covers
    # "cellular" and vice versa.
    concept = concept.lower()
    return any(
        concept in candidate.lower() or candidate.lower() in concept
        for candidate in candidate_concepts
    )


def _split_coverage(
    reference_concepts: list[str], candidate_concepts: list[str]
) -> tuple[list[str], list[str]]:
    covered: list[str] = []
    missing: list[str] = []
    for concept in reference_concepts:
        if _is_covered(concept, candidate_concepts):
            covered.append(concept)
        else:
            missing.append(concept)
    return covered, missing


def concept_coverage(reference_concepts: list[str], candidate_concepts: list[str]) -> float:
    """Fraction of reference concepts covered by the candidate (0 if none)."""

    if not reference_concepts:
        return 0.0
    covered, _missing = _split_coverage(reference_concepts, candidate_concepts)
    return len(covered) / len(reference_concepts)


def _justification(percentage: int, semantic_similarity: float, covered: int, total: int) -> str:
    if percentage >= 80:
        return (
            f"Strong match with {percentage}% similarity. The answer covers {covered}/{total} "
            "key concepts from the reference material. Semantic alignment is high "
            f"({_round_half_up(semantic_similarity * 100)}%)."
        )
    if percentage >= 60:
        return (
            f"Moderate match with {percentage}% similarity. The answer captures {covered}/{total} "
            "key concepts. Some important points from the reference may be missing or "
            "differently expressed."
        )
    if percentage >= 40:
        return (
            f"Partial match with {percentage}% similarity. Only {covered}/{total} key concepts "
            "are addressed. Consider reviewing the reference material for additional "
            "important points."
        )
    return (
        f"Low match with {percentage}% similarity. The answer covers only {covered}/{total} "
        "reference concepts. The response may be addressing different aspects or missing "
        "core information."
    )


async def evaluate_answer(
    candidate_answer: str,
    reference_query: str,
    *,
    index: VectorIndex,
    embedder: EmbeddingProvider | None = None,
) -> EvaluationResult:
    """Score ``candidate_answer`` against document text retrieved for ``reference_query``.

    The score blends semantic similarity of the two texts (60%) with lexical
    concept coverage (40%). When nothing relevant is retrieved, a zero score
    is returned instead of raising.

    ``embedder`` defaults to the provider that built ``index``; passing a
    different one compares vectors from two different spaces.
    """

    if embedder is None:
        embedder = index.embedder

    results = await index.search(reference_query, REFERENCE_TOP_K)
    if not results or results[0].score < REFERENCE_THRESHOLD:
        return _no_reference_result()

    reference_text = " ".join(
        result.chunk.text for result in results if result.score > REFERENCE_THRESHOLD
    )

    candidate_embedding = await embedder.embed(candidate_answer)
    reference_embedding = await embedder.embed(reference_text)
    semantic_similarity = min(
        1.0, max(0.0, cosine_similarity(candidate_embedding, reference_embedding))
    )

    reference_concepts = extract_key_concepts(reference_text)
    candidate_concepts = extract_key_concepts(candidate_answer)
    covered, missing = _split_coverage(reference_concepts, candidate_concepts)
    coverage = len(covered) / len(reference_concepts) if reference_concepts else 0.0

    final_score = _SEMANTIC_WEIGHT * semantic_similarity + _CONCEPT_WEIGHT * coverage
    percentage = min(100, max(0, _round_half_up(final_score * 100)))

    return EvaluationResult(
        similarity_percentage=percentage,
        justification=_justification(
            percentage, semantic_similarity, len(covered), len(reference_concepts)
        ),
        missing_elements=missing[:_MAX_MISSING_ELEMENTS],
        reference_excerpts=[
            result.chunk.text[:_EXCERPT_CHARS] + "..." for result in results[:_MAX_EXCERPTS]
        ],
    )
