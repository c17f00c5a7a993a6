from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import threading
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, cast

from docchat.retrieval.embeddings import (
    DEFAULT_EMBEDDING_MODEL,
    EmbeddingProvider,
    EmbeddingProviderError,
    ModelProgressCallback,
    SentenceTransformerEmbeddingProvider,
)
from docchat.retrieval.types import SearchResult
from docchat.retrieval.vector_index import DEFAULT_TOP_K, IndexProgressCallback, VectorIndex
from docchat.schemas.evaluation import EvaluationResult
from docchat.services.answer_evaluator import evaluate_answer
from docchat.services.answer_generator import generate_answer
from docchat.services.document_ingestion import (
    DocumentParseError,
    EmptyDocumentError,
    ParsedDocument,
    UnsupportedDocumentTypeError,
    parse_document,
)
from docchat.services.pdf_ingestion import PdfEncryptedError
from docchat.services.session_memory import SessionMemory
from docchat.services.text_chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text

logger = logging.getLogger(__name__)


class DocChatError(RuntimeError):
    """Base error for the docchat SDK."""


class DocChatConfigurationError(DocChatError):
    """Raised when the SDK is misconfigured (e.g., invalid chunk size)."""


class DocChatModelError(DocChatError):
    """Raised when the embedding model is unavailable or fails."""


class DocChatIngestionError(DocChatError):
    """Raised when ingestion fails."""


class DocChatUnsupportedMediaTypeError(DocChatIngestionError):
    """Raised when an uploaded document type is not supported."""


class DocChatDocumentParseError(DocChatIngestionError):
    """Raised when a supported document cannot be parsed."""


class DocChatDocumentEncryptedError(DocChatIngestionError):
    """Raised when an encrypted/password-protected document is uploaded."""


class DocChatEmptyDocumentError(DocChatIngestionError):
    """Raised when a document contains no indexable text."""


class DocChatQueryError(DocChatError):
    """Raised when querying fails."""


@dataclass(frozen=True)
class IngestionResult:
    filename: str
    mime_type: str
    checksum_sha256: str
    page_count: int
    char_count: int
    chunk_count: int


@dataclass(frozen=True)
class AskResult:
    prompt: str
    answer: str
    results: list[SearchResult]


_EMBEDDING_MODEL_ENV = "DOCCHAT_EMBEDDING_MODEL"
_CHUNK_SIZE_ENV = "DOCCHAT_CHUNK_SIZE"
_CHUNK_OVERLAP_ENV = "DOCCHAT_CHUNK_OVERLAP"
_TOP_K_ENV = "DOCCHAT_TOP_K"

_CHAT_CLEARED_MESSAGE = "Chat cleared. You can continue asking questions about the loaded document."


T = TypeVar("T")


def _run_awaitable(factory: Callable[[], Awaitable[T]]) -> T:
    """Run an awaitable factory from sync code.

    If an event loop is already running in the current thread (e.g., Jupyter),
    the coroutine is executed in a dedicated thread via asyncio.run.
    """

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(cast(Coroutine[Any, Any, T], factory()))

    if not loop.is_running():
        return loop.run_until_complete(factory())

    result: dict[str, T] = {}
    error: dict[str, BaseException] = {}

    def _target() -> None:
        try:
            result["value"] = asyncio.run(cast(Coroutine[Any, Any, T], factory()))
        except BaseException as exc:  # pragma: no cover
            error["exc"] = exc

    thread = threading.Thread(target=_target, daemon=True)
    thread.start()
    thread.join()

    if "exc" in error:
        raise error["exc"]

    if "value" not in result:  # pragma: no cover
        raise RuntimeError("Async execution failed without an exception")

    return result["value"]


def _read_non_empty_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _resolve_int_setting(
    explicit: int | None, env_name: str, default: int, *, minimum: int
) -> int:
    if explicit is not None:
        value = explicit
        source = "argument"
    else:
        raw = _read_non_empty_env(env_name)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise DocChatConfigurationError(
                f"Invalid {env_name} value {raw!r}; expected an integer."
            ) from exc
        source = env_name

    if value < minimum:
        raise DocChatConfigurationError(
            f"Invalid {source} value {value}; must be at least {minimum}."
        )
    return value


class DocChat:
    """docchat SDK facade.

    Holds one embedding provider, one :class:`VectorIndex` and one chat
    transcript, and exposes:

    - ``ingest``: document -> text -> chunks -> embeddings -> index
    - ``ask``: query -> top matches -> extractive answer
    - ``evaluate``: candidate answer -> score against retrieved reference text

    Only one document is loaded at a time; ingesting again replaces it.

    Parameters
    ----------
    embedding_model:
        Model used by the default sentence-transformers provider. Falls back to
        ``DOCCHAT_EMBEDDING_MODEL`` and then MiniLM-L6-v2.
    embedder:
        Optional custom provider; takes precedence over ``embedding_model``.
    chunk_size, chunk_overlap:
        Chunking parameters (``DOCCHAT_CHUNK_SIZE`` / ``DOCCHAT_CHUNK_OVERLAP``).
    top_k:
        Default number of chunks retrieved per question (``DOCCHAT_TOP_K``).
    """

    def __init__(
        self,
        *,
        embedding_model: str | None = None,
        embedder: EmbeddingProvider | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        top_k: int | None = None,
        max_turns: int = 50,
    ) -> None:
        self._chunk_size = _resolve_int_setting(
            chunk_size, _CHUNK_SIZE_ENV, DEFAULT_CHUNK_SIZE, minimum=1
        )
        self._chunk_overlap = _resolve_int_setting(
            chunk_overlap, _CHUNK_OVERLAP_ENV, DEFAULT_CHUNK_OVERLAP, minimum=0
        )
        self._top_k = _resolve_int_setting(top_k, _TOP_K_ENV, DEFAULT_TOP_K, minimum=1)

        if embedder is None:
            model_name = (
                (embedding_model or "").strip()
                or _read_non_empty_env(_EMBEDDING_MODEL_ENV)
                or DEFAULT_EMBEDDING_MODEL
            )
            embedder = SentenceTransformerEmbeddingProvider(model_name)

        self._embedder = embedder
        self._index = VectorIndex(embedder)
        self._session_memory = SessionMemory(max_turns=max_turns)
        self._document: IngestionResult | None = None

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def session_memory(self) -> SessionMemory:
        return self._session_memory

    @property
    def document(self) -> IngestionResult | None:
        return self._document

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._chunk_overlap

    @property
    def top_k(self) -> int:
        return self._top_k

    @property
    def is_model_ready(self) -> bool:
        return self._embedder.is_ready

    def load_model(self, on_progress: ModelProgressCallback | None = None) -> None:
        """Load the embedding model if it is not loaded yet."""

        if self._embedder.is_ready:
            return

        try:
            _run_awaitable(lambda: self._embedder.initialize(on_progress))
        except EmbeddingProviderError as exc:
            raise DocChatModelError(str(exc)) from exc

    def _parse(
        self,
        document: str | Path | bytes,
        *,
        filename: str | None,
        content_type: str | None,
    ) -> tuple[str, ParsedDocument]:
        if isinstance(document, (str, Path)):
            path = Path(document)
            data = path.read_bytes()
            resolved_filename = filename or path.name
            resolved_content_type = content_type or mimetypes.guess_type(resolved_filename)[0]
        else:
            data = document
            resolved_filename = filename or "document"
            resolved_content_type = content_type

        try:
            parsed = parse_document(
                data,
                filename=resolved_filename,
                content_type=resolved_content_type,
            )
        except PdfEncryptedError as exc:
            raise DocChatDocumentEncryptedError("PDF is encrypted or requires a password") from exc
        except UnsupportedDocumentTypeError as exc:
            raise DocChatUnsupportedMediaTypeError(str(exc)) from exc
        except EmptyDocumentError as exc:
            raise DocChatEmptyDocumentError(str(exc)) from exc
        except DocumentParseError as exc:
            raise DocChatDocumentParseError(str(exc)) from exc

        return resolved_filename, parsed

    def ingest(
        self,
        document: str | Path | bytes,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        on_progress: IndexProgressCallback | None = None,
    ) -> IngestionResult:
        """Load a document, replacing any previously ingested one.

        If indexing fails, the previously loaded document stays searchable.
        """

        resolved_filename, parsed = self._parse(
            document, filename=filename, content_type=content_type
        )

        chunks = chunk_text(parsed.text, self._chunk_size, self._chunk_overlap)
        if not chunks:
            raise DocChatEmptyDocumentError("No text found in document")

        self.load_model()
        try:
            _run_awaitable(lambda: self._index.add_documents(chunks, on_progress))
        except EmbeddingProviderError as exc:
            raise DocChatModelError(str(exc)) from exc

        result = IngestionResult(
            filename=resolved_filename,
            mime_type=parsed.mime_type,
            checksum_sha256=parsed.checksum_sha256,
            page_count=parsed.page_count,
            char_count=len(parsed.text),
            chunk_count=len(chunks),
        )
        self._document = result
        logger.info(
            "Loaded %s: %d chunks from %d characters",
            resolved_filename,
            result.chunk_count,
            result.char_count,
        )

        self._session_memory.clear()
        self._session_memory.append_turn(
            role="system",
            content=(
                "Document loaded successfully!\n\n"
                f"• {result.chunk_count} text chunks indexed\n"
                f"• {result.char_count:,} characters extracted\n\n"
                f'You can now ask questions about "{resolved_filename}"'
            ),
        )
        return result

    def _require_document(self) -> None:
        if self._document is None or self._index.size == 0:
            raise DocChatQueryError("No document loaded. Ingest a document first.")

    def ask(self, prompt: str, *, top_k: int | None = None) -> AskResult:
        """Answer ``prompt`` with text extracted from the loaded document."""

        self._require_document()
        resolved_top_k = top_k if top_k is not None else self._top_k

        self._session_memory.append_turn(role="user", content=prompt)
        try:
            results = _run_awaitable(lambda: self._index.search(prompt, resolved_top_k))
        except EmbeddingProviderError as exc:
            raise DocChatModelError(str(exc)) from exc

        answer = generate_answer(prompt, results)
        self._session_memory.append_turn(role="assistant", content=answer)
        return AskResult(prompt=prompt, answer=answer, results=list(results))

    def evaluate(self, answer: str, topic: str) -> EvaluationResult:
        """Score a free-text ``answer`` against document content about ``topic``."""

        self._require_document()
        try:
            return _run_awaitable(
                lambda: evaluate_answer(answer, topic, index=self._index, embedder=self._embedder)
            )
        except EmbeddingProviderError as exc:
            raise DocChatModelError(str(exc)) from exc

    def clear_chat(self) -> None:
        """Drop the transcript but keep the loaded document."""

        self._session_memory.clear()
        if self._document is not None:
            self._session_memory.append_turn(role="system", content=_CHAT_CLEARED_MESSAGE)

    def clear(self) -> None:
        """Unload the document, its index and the transcript."""

        self._index.clear()
        self._document = None
        self._session_memory.clear()
