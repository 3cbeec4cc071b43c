"""Document store protocol for data access."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from backend.app.models.chat import ArchivePage, ChatMessage
from backend.app.models.documents import Document, DocumentStatus, TextChunk

MAX_CHUNK_WRITE_BATCH = 500


class ConcurrentModificationError(Exception):
    """Chat thread changed since it was read."""

    pass


@dataclass
class ChatThread:
    """Live chat window record."""

    document_id: str
    chat_id: str
    user_id: str
    messages: list[ChatMessage]
    version: int


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class DocumentStore(Protocol):
    """Persistence for documents, chunks and chat history.

    Ownership checks happen in the services; methods taking ``user_id``
    filter by it.
    """

    async def ping(self) -> None:
        """Raise if the backing store is unreachable."""
        ...

    async def create_document(self, document: Document) -> None:
        """Insert a new document record."""
        ...

    async def get_document(self, document_id: str) -> Document | None:
        """Get document by ID regardless of owner."""
        ...

    async def update_document(self, document_id: str, **changes: Any) -> bool:
        """Update document fields and bump ``updated_at``.

        Returns:
            False if the document no longer exists
        """
        ...

    async def flag_cancel_requested(
        self, document_id: str, user_id: str, requested_at: datetime
    ) -> DocumentStatus | None:
        """Set the cancel flag in one transaction unless the document is ready.

        Returns:
            None if missing or not owned by ``user_id``; otherwise the status
            observed inside the transaction (the flag is only written when it
            is not ``ready``)
        """
        ...

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document with its chunks, chat threads and archive pages."""
        ...

    async def list_documents(self, user_id: str, limit: int = 20) -> list[Document]:
        """List a user's documents, newest first."""
        ...

    async def put_chunks(self, document_id: str, user_id: str, chunks: list[TextChunk]) -> None:
        """Write up to MAX_CHUNK_WRITE_BATCH chunks atomically."""
        ...

    async def get_chunk(self, document_id: str, chunk_index: int) -> TextChunk | None:
        """Get one chunk by index."""
        ...

    async def list_chunk_indices(self, document_id: str) -> list[int]:
        """Indices of persisted chunks, ascending."""
        ...

    async def delete_chunks(self, document_id: str) -> int:
        """Delete all chunks of a document; returns the number removed."""
        ...

    async def get_chat(self, document_id: str, chat_id: str) -> ChatThread | None:
        """Get the live window of a chat."""
        ...

    async def save_chat(
        self,
        *,
        document_id: str,
        chat_id: str,
        user_id: str,
        messages: list[ChatMessage],
        expected_version: int,
        archive_pages: list[ArchivePage],
    ) -> int:
        """Replace the live window and add archive pages atomically.

        ``expected_version`` is the version read (0 for a new chat).

        Returns:
            New version

        Raises:
            ConcurrentModificationError: The stored version differs
        """
        ...

    async def list_archive_pages(
        self,
        document_id: str,
        chat_id: str,
        *,
        before: datetime | None = None,
        limit: int = 1,
    ) -> list[ArchivePage]:
        """Archive pages created strictly before ``before``, newest first."""
        ...


def check_chunk_batch(chunks: list[TextChunk]) -> None:
    """Reject oversized chunk write batches."""
    if len(chunks) > MAX_CHUNK_WRITE_BATCH:
        raise ValueError(
            f"Chunk batch of {len(chunks)} exceeds the {MAX_CHUNK_WRITE_BATCH}-write limit"
        )
