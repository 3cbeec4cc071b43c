"""In-memory implementation of the document store."""

import asyncio
from datetime import datetime
from typing import Any

from backend.app.db.repositories import (
    ChatThread,
    ConcurrentModificationError,
    check_chunk_batch,
    utcnow,
)
from backend.app.models.chat import ArchivePage, ChatMessage
from backend.app.models.documents import Document, DocumentStatus, TextChunk


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore.

    Returned models are copies, so callers never mutate stored state.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, dict[int, TextChunk]] = {}
        self._chats: dict[tuple[str, str], ChatThread] = {}
        self._archive: dict[tuple[str, str], list[ArchivePage]] = {}
        self._lock = asyncio.Lock()

    async def ping(self) -> None:
        return None

    async def create_document(self, document: Document) -> None:
        """Insert a new document record."""
        async with self._lock:
            if document.document_id in self._documents:
                raise ValueError(f"Document {document.document_id} already exists")
            self._documents[document.document_id] = document.model_copy(deep=True)

    async def get_document(self, document_id: str) -> Document | None:
        """Get document by ID."""
        doc = self._documents.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def update_document(self, document_id: str, **changes: Any) -> bool:
        """Update document fields."""
        async with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                return False
            changes["updated_at"] = utcnow()
            self._documents[document_id] = doc.model_copy(update=changes)
            return True

    async def flag_cancel_requested(
        self, document_id: str, user_id: str, requested_at: datetime
    ) -> DocumentStatus | None:
        """Conditionally set the cancel flag."""
        async with self._lock:
            doc = self._documents.get(document_id)
            if doc is None or doc.user_id != user_id:
                return None
            if doc.status != "ready":
                self._documents[document_id] = doc.model_copy(
                    update={"cancel_requested_at": requested_at, "updated_at": utcnow()}
                )
            return doc.status

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and everything hanging off it."""
        async with self._lock:
            existed = self._documents.pop(document_id, None) is not None
            self._chunks.pop(document_id, None)
            for key in [k for k in self._chats if k[0] == document_id]:
                del self._chats[key]
            for key in [k for k in self._archive if k[0] == document_id]:
                del self._archive[key]
            return existed

    async def list_documents(self, user_id: str, limit: int = 20) -> list[Document]:
        """List a user's documents, newest first."""
        docs = [d for d in self._documents.values() if d.user_id == user_id]
        docs.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in docs[:limit]]

    async def put_chunks(self, document_id: str, user_id: str, chunks: list[TextChunk]) -> None:
        """Write a batch of chunks."""
        check_chunk_batch(chunks)
        async with self._lock:
            stored = self._chunks.setdefault(document_id, {})
            for chunk in chunks:
                stored[chunk.chunk_index] = chunk.model_copy()

    async def get_chunk(self, document_id: str, chunk_index: int) -> TextChunk | None:
        """Get one chunk."""
        chunk = self._chunks.get(document_id, {}).get(chunk_index)
        return chunk.model_copy() if chunk else None

    async def list_chunk_indices(self, document_id: str) -> list[int]:
        """Persisted chunk indices."""
        return sorted(self._chunks.get(document_id, {}))

    async def delete_chunks(self, document_id: str) -> int:
        """Delete all chunks of a document."""
        async with self._lock:
            return len(self._chunks.pop(document_id, {}))

    async def get_chat(self, document_id: str, chat_id: str) -> ChatThread | None:
        """Get the live window of a chat."""
        thread = self._chats.get((document_id, chat_id))
        if thread is None:
            return None
        return ChatThread(
            document_id=thread.document_id,
            chat_id=thread.chat_id,
            user_id=thread.user_id,
            messages=[m.model_copy(deep=True) for m in thread.messages],
            version=thread.version,
        )

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
        """Replace live window and append archive pages under a version check."""
        key = (document_id, chat_id)
        async with self._lock:
            current = self._chats.get(key)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise ConcurrentModificationError(
                    f"Chat {chat_id} is at version {current_version}, expected {expected_version}"
                )

            new_version = current_version + 1
            self._chats[key] = ChatThread(
                document_id=document_id,
                chat_id=chat_id,
                user_id=user_id,
                messages=[m.model_copy(deep=True) for m in messages],
                version=new_version,
            )
            self._archive.setdefault(key, []).extend(
                p.model_copy(deep=True) for p in archive_pages
            )
            return new_version

    async def list_archive_pages(
        self,
        document_id: str,
        chat_id: str,
        *,
        before: datetime | None = None,
        limit: int = 1,
    ) -> list[ArchivePage]:
        """Archive pages, newest first."""
        pages = self._archive.get((document_id, chat_id), [])
        if before is not None:
            pages = [p for p in pages if p.created_at < before]
        pages = sorted(pages, key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in pages[:limit]]
