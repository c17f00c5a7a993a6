from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Literal

from docchat.retrieval.types import SearchResult

RELEVANCE_THRESHOLD = 0.3
NO_ANSWER_MESSAGE = "The document does not contain this information."

_HIGH_CONFIDENCE = 0.6
_MODERATE_CONFIDENCE = 0.4
_MIN_SENTENCE_LENGTH = 20
_MIN_QUERY_WORD_LENGTH = 3
_MAX_ANSWER_SENTENCES = 3

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_WHITESPACE_RE = re.compile(r"\s+")

ConfidenceLevel = Literal["high", "moderate", "low"]


def confidence_level(score: float) -> ConfidenceLevel:
    if score > _HIGH_CONFIDENCE:
        return "high"
    if score > _MODERATE_CONFIDENCE:
        return "moderate"
    return "low"


def _query_words(query: str) -> list[str]:
    # Punctuation stays attached, so "cells?" never matches a split sentence.
    return [word for word in query.lower().split(" ") if len(word) > _MIN_QUERY_WORD_LENGTH]


def _format_response(text: str, confidence: float) -> str:
    response = _WHITESPACE_RE.sub(" ", text).strip()
    if confidence_level(confidence) == "low":
        response += (
            f"\n\n_Note: This answer has low confidence ({confidence * 100:.0f}% match). "
            "The document may not directly address your question._"
        )
    return response


def _synthesize(query: str, results: list[SearchResult]) -> str:
    best = max(results, key=lambda result: result.score)
    if len(results) == 1:
        return _format_response(best.chunk.text, best.score)

    combined = " ".join(result.chunk.text for result in results)
    sentences = [
        sentence.strip()
        for sentence in _SENTENCE_SPLIT_RE.split(combined)
        if len(sentence.strip()) > _MIN_SENTENCE_LENGTH
    ]

    query_words = _query_words(query)
    relevant = [
        sentence
        for sentence in sentences
        if any(word in sentence.lower() for word in query_words)
    ]

    if relevant:
        answer = ". ".join(relevant[:_MAX_ANSWER_SENTENCES]).strip()
        return _format_response(answer + ".", best.score)

    return _format_response(best.chunk.text, best.score)


def generate_answer(query: str, results: Sequence[SearchResult]) -> str:
    """Build an extractive answer from ranked search results.

    Only results scoring at least :data:`RELEVANCE_THRESHOLD` are used. The
    answer is made of document text only: either the single relevant chunk or
    up to three sentences from the relevant chunks that mention a query word.
    Low-confidence answers carry a visible note with the match percentage.
    """

    relevant = [result for result in results if result.score >= RELEVANCE_THRESHOLD]
    if not relevant:
        return NO_ANSWER_MESSAGE
    return _synthesize(query, relevant)
