"""Document domain models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

DocumentStatus = Literal["processing", "ready", "error"]
SourceKind = Literal["pdf", "text"]

PREVIEW_CHARS = 200


def make_preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """First ``limit`` characters of ``text``."""
    return text[:limit]


class Document(BaseModel):
    """Uploaded or pasted document with pipeline metadata."""

    document_id: str
    user_id: str
    title: str
    file_name: str
    source_kind: SourceKind
    file_size: int = Field(..., ge=0, description="Bytes for PDFs, characters for text")
    page_count: int = 0
    status: DocumentStatus = "processing"
    error_message: str | None = None
    cancel_requested_at: datetime | None = None
    storage_path: str | None = None
    content: str | None = None
    text_preview: str | None = None
    extracted_at: datetime | None = None
    extraction_duration_ms: int | None = None
    vector_count: int | None = None
    indexed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class DocumentSummary(BaseModel):
    """Status view of a document returned by the API."""

    document_id: str
    title: str
    file_name: str
    source_kind: SourceKind
    file_size: int
    page_count: int
    status: DocumentStatus
    error_message: str | None = None
    vector_count: int | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentSummary":
        """Project a stored document onto the public view."""
        return cls(
            document_id=doc.document_id,
            title=doc.title,
            file_name=doc.file_name,
            source_kind=doc.source_kind,
            file_size=doc.file_size,
            page_count=doc.page_count,
            status=doc.status,
            error_message=doc.error_message,
            vector_count=doc.vector_count,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


class ExtractedPage(BaseModel):
    """Text of a single page, numbered from 1."""

    page_number: int = Field(..., ge=1)
    text: str


class ExtractedText(BaseModel):
    """Output of the text extractor."""

    page_count: int = Field(..., ge=0)
    pages: list[ExtractedPage]


class TextChunk(BaseModel):
    """One indexed slice of a document page."""

    chunk_index: int = Field(..., ge=0, description="Global, contiguous, 0-based")
    page_number: int = Field(..., ge=1)
    text: str
    text_preview: str


class ChunkedDocument(BaseModel):
    """Chunker output for a whole document."""

    document_id: str
    user_id: str
    chunks: list[TextChunk]
