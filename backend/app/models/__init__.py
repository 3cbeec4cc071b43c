"""Models package - re-exports for convenience."""

from backend.app.models.chat import (
    ArchivePage,
    ChatAnswer,
    ChatHistory,
    ChatMessage,
    ChatSource,
    DeltaEvent,
    DoneEvent,
    ErrorEvent,
    NewChatMessage,
    StreamEvent,
    format_sse,
)
from backend.app.models.documents import (
    ChunkedDocument,
    Document,
    DocumentSummary,
    ExtractedPage,
    ExtractedText,
    TextChunk,
)
from backend.app.models.embeddings import (
    ChunkMetadata,
    EmbeddingInput,
    EmbeddingResult,
    VectorMatch,
    VectorMetadata,
    VectorRecord,
)
from backend.app.models.retrieval import RetrievalResult, RetrievedChunk

__all__ = [
    # Documents
    "Document",
    "DocumentSummary",
    "ExtractedPage",
    "ExtractedText",
    "TextChunk",
    "ChunkedDocument",
    # Embeddings
    "ChunkMetadata",
    "EmbeddingInput",
    "EmbeddingResult",
    "VectorMetadata",
    "VectorRecord",
    "VectorMatch",
    # Retrieval
    "RetrievedChunk",
    "RetrievalResult",
    # Chat
    "ChatSource",
    "NewChatMessage",
    "ChatMessage",
    "ChatHistory",
    "ArchivePage",
    "ChatAnswer",
    "DeltaEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "format_sse",
]
