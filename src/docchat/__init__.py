"""docchat: offline question answering over a single document."""

from .client import (
    AskResult,
    DocChat,
    DocChatConfigurationError,
    DocChatDocumentEncryptedError,
    DocChatDocumentParseError,
    DocChatEmptyDocumentError,
    DocChatError,
    DocChatIngestionError,
    DocChatModelError,
    DocChatQueryError,
    DocChatUnsupportedMediaTypeError,
    IngestionResult,
)
from .retrieval.embeddings import EmbeddingProvider, SentenceTransformerEmbeddingProvider
from .retrieval.types import Chunk, SearchResult
from .retrieval.vector_index import VectorIndex
from .schemas.evaluation import EvaluationResult

__all__ = [
    "AskResult",
    "Chunk",
    "DocChat",
    "DocChatConfigurationError",
    "DocChatDocumentEncryptedError",
    "DocChatDocumentParseError",
    "DocChatEmptyDocumentError",
    "DocChatError",
    "DocChatIngestionError",
    "DocChatModelError",
    "DocChatQueryError",
    "DocChatUnsupportedMediaTypeError",
    "EmbeddingProvider",
    "EvaluationResult",
    "IngestionResult",
    "SearchResult",
    "SentenceTransformerEmbeddingProvider",
    "VectorIndex",
]
