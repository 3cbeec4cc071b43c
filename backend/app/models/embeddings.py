"""Embedding and vector models."""

from typing import Any

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Chunk identity carried alongside its text and vector."""

    page_number: int = Field(..., ge=1)
    chunk_index: int
    text_preview: str


class EmbeddingInput(BaseModel):
    """Text to embed plus the chunk it came from."""

    text: str
    metadata: ChunkMetadata


class EmbeddingResult(BaseModel):
    """Vector for one chunk, index-recoverable through metadata."""

    vector: list[float]
    metadata: ChunkMetadata


class VectorMetadata(BaseModel):
    """Metadata stored with every vector; used for filtering on query."""

    user_id: str
    document_id: str
    page_number: int
    chunk_index: int
    text_preview: str


class VectorRecord(BaseModel):
    """Vector ready for upsert."""

    id: str
    values: list[float]
    metadata: VectorMetadata


class VectorMatch(BaseModel):
    """Similarity search hit."""

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)
