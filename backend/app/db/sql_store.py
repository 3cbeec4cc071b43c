"""SQLAlchemy (async) implementation of the document store."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.models import ChatArchivePageRow, ChatThreadRow, ChunkRow, DocumentRow
from backend.app.db.repositories import (
    ChatThread,
    ConcurrentModificationError,
    as_utc,
    check_chunk_batch,
    utcnow,
)
from backend.app.models.chat import ArchivePage, ChatMessage
from backend.app.models.documents import Document, DocumentStatus, TextChunk

_DATETIME_FIELDS = (
    "cancel_requested_at",
    "extracted_at",
    "indexed_at",
    "created_at",
    "updated_at",
)


def _to_document(row: DocumentRow) -> Document:
    data = {column.name: getattr(row, column.name) for column in DocumentRow.__table__.columns}
    for field in _DATETIME_FIELDS:
        data[field] = as_utc(data[field])
    return Document.model_validate(data)


def _to_chunk(row: ChunkRow) -> TextChunk:
    return TextChunk(
        chunk_index=row.chunk_index,
        page_number=row.page_number,
        text=row.text,
        text_preview=row.text_preview,
    )


def _dump_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in messages]


def _load_messages(raw: list[dict[str, Any]]) -> list[ChatMessage]:
    return [ChatMessage.model_validate(m) for m in raw]


class SqlDocumentStore:
    """SQL implementation of DocumentStore."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def create_document(self, document: Document) -> None:
        """Insert a new document record."""
        async with self._session_factory() as session, session.begin():
            session.add(DocumentRow(**document.model_dump()))

    async def get_document(self, document_id: str) -> Document | None:
        """Get document by ID."""
        async with self._session_factory() as session:
            row = await session.get(DocumentRow, document_id)
            return _to_document(row) if row else None

    async def update_document(self, document_id: str, **changes: Any) -> bool:
        """Update document fields."""
        changes["updated_at"] = utcnow()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(DocumentRow)
                .where(DocumentRow.document_id == document_id)
                .values(**changes)
            )
            return result.rowcount > 0

    async def flag_cancel_requested(
        self, document_id: str, user_id: str, requested_at: datetime
    ) -> DocumentStatus | None:
        """Conditionally set the cancel flag inside one transaction."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(DocumentRow)
                .where(
                    DocumentRow.document_id == document_id,
                    DocumentRow.user_id == user_id,
                    DocumentRow.status != "ready",
                )
                .values(cancel_requested_at=requested_at, updated_at=utcnow())
            )
            row = await session.execute(
                select(DocumentRow.status).where(
                    DocumentRow.document_id == document_id,
                    DocumentRow.user_id == user_id,
                )
            )
            # an owned row left untouched by the update is ready
            return row.scalar_one_or_none()  # type: ignore[return-value]

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and its dependents."""
        async with self._session_factory() as session, session.begin():
            await session.execute(delete(ChunkRow).where(ChunkRow.document_id == document_id))
            await session.execute(
                delete(ChatThreadRow).where(ChatThreadRow.document_id == document_id)
            )
            await session.execute(
                delete(ChatArchivePageRow).where(ChatArchivePageRow.document_id == document_id)
            )
            result = await session.execute(
                delete(DocumentRow).where(DocumentRow.document_id == document_id)
            )
            return result.rowcount > 0

    async def list_documents(self, user_id: str, limit: int = 20) -> list[Document]:
        """List a user's documents, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRow)
                .where(DocumentRow.user_id == user_id)
                .order_by(DocumentRow.created_at.desc())
                .limit(limit)
            )
            return [_to_document(row) for row in result.scalars().all()]

    async def put_chunks(self, document_id: str, user_id: str, chunks: list[TextChunk]) -> None:
        """Write a batch of chunks in one transaction."""
        check_chunk_batch(chunks)
        async with self._session_factory() as session, session.begin():
            for chunk in chunks:
                await session.merge(
                    ChunkRow(
                        document_id=document_id,
                        chunk_index=chunk.chunk_index,
                        user_id=user_id,
                        page_number=chunk.page_number,
                        text=chunk.text,
                        text_preview=chunk.text_preview,
                    )
                )

    async def get_chunk(self, document_id: str, chunk_index: int) -> TextChunk | None:
        """Get one chunk."""
        async with self._session_factory() as session:
            row = await session.get(ChunkRow, (document_id, chunk_index))
            return _to_chunk(row) if row else None

    async def list_chunk_indices(self, document_id: str) -> list[int]:
        """Persisted chunk indices."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChunkRow.chunk_index)
                .where(ChunkRow.document_id == document_id)
                .order_by(ChunkRow.chunk_index)
            )
            return list(result.scalars().all())

    async def delete_chunks(self, document_id: str) -> int:
        """Delete all chunks of a document."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(ChunkRow).where(ChunkRow.document_id == document_id)
            )
            return result.rowcount

    async def get_chat(self, document_id: str, chat_id: str) -> ChatThread | None:
        """Get the live window of a chat."""
        async with self._session_factory() as session:
            row = await session.get(ChatThreadRow, (document_id, chat_id))
            if row is None:
                return None
            return ChatThread(
                document_id=row.document_id,
                chat_id=row.chat_id,
                user_id=row.user_id,
                messages=_load_messages(row.messages),
                version=row.version,
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
        new_version = expected_version + 1
        try:
            async with self._session_factory() as session, session.begin():
                if expected_version == 0:
                    session.add(
                        ChatThreadRow(
                            document_id=document_id,
                            chat_id=chat_id,
                            user_id=user_id,
                            messages=_dump_messages(messages),
                            version=new_version,
                            updated_at=utcnow(),
                        )
                    )
                    await session.flush()
                else:
                    result = await session.execute(
                        update(ChatThreadRow)
                        .where(
                            ChatThreadRow.document_id == document_id,
                            ChatThreadRow.chat_id == chat_id,
                            ChatThreadRow.version == expected_version,
                        )
                        .values(
                            messages=_dump_messages(messages),
                            version=new_version,
                            updated_at=utcnow(),
                        )
                    )
                    if result.rowcount == 0:
                        raise ConcurrentModificationError(
                            f"Chat {chat_id} changed since version {expected_version}"
                        )

                for page in archive_pages:
                    session.add(
                        ChatArchivePageRow(
                            page_id=page.page_id,
                            document_id=page.document_id,
                            chat_id=page.chat_id,
                            user_id=page.user_id,
                            created_at=page.created_at,
                            messages=_dump_messages(page.messages),
                        )
                    )
        except IntegrityError as e:
            raise ConcurrentModificationError(f"Chat {chat_id} was created concurrently") from e
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
        query = select(ChatArchivePageRow).where(
            ChatArchivePageRow.document_id == document_id,
            ChatArchivePageRow.chat_id == chat_id,
        )
        if before is not None:
            query = query.where(ChatArchivePageRow.created_at < before)
        query = query.order_by(ChatArchivePageRow.created_at.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                ArchivePage(
                    page_id=row.page_id,
                    document_id=row.document_id,
                    chat_id=row.chat_id,
                    user_id=row.user_id,
                    created_at=as_utc(row.created_at),  # type: ignore[arg-type]
                    messages=_load_messages(row.messages),
                )
                for row in result.scalars().all()
            ]
