"""Document lifecycle operations behind the HTTP API."""

import logging
import uuid

from backend.app.config import Settings
from backend.app.db.repositories import DocumentStore, utcnow
from backend.app.docs.ingest import IngestionOrchestrator
from backend.app.docs.validation import validate_pdf_upload, validate_text_content, validate_title
from backend.app.errors import AppError, DocumentNotFoundError
from backend.app.models.documents import Document
from backend.app.storage.blob import BlobStore, document_blob_path
from backend.app.vectors.indexer import VectorIndexer

logger = logging.getLogger(__name__)


class DocumentService:
    """Create, inspect and delete documents; ingestion starts on create."""

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        indexer: VectorIndexer,
        orchestrator: IngestionOrchestrator,
        settings: Settings,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._indexer = indexer
        self._orchestrator = orchestrator
        self._settings = settings

    async def create_text_document(self, user_id: str, title: str, content: str) -> Document:
        """Store pasted text as a one-page document and start ingestion."""
        title = validate_title(title, max_length=self._settings.title_max_length)
        content = validate_text_content(
            content,
            min_length=self._settings.text_min_length,
            max_length=self._settings.text_max_length,
        )

        now = utcnow()
        document = Document(
            document_id=uuid.uuid4().hex,
            user_id=user_id,
            title=title,
            file_name=f"{title}.txt",
            source_kind="text",
            file_size=len(content),
            page_count=1,
            status="processing",
            content=content,
            created_at=now,
            updated_at=now,
        )
        await self._store.create_document(document)
        logger.info(f"Created text document {document.document_id} for user {user_id}")

        self._orchestrator.start(document.document_id)
        return document

    async def upload_pdf_document(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        content_type: str | None = "application/pdf",
        title: str | None = None,
    ) -> Document:
        """Store an uploaded PDF and start ingestion.

        Raises:
            ValidationError: Missing, oversized, or non-PDF upload
            AppError: UPLOAD_FAILED if storing the file or record fails
        """
        validate_pdf_upload(data, content_type, max_bytes=self._settings.max_upload_bytes)

        document_id = uuid.uuid4().hex
        storage_path = document_blob_path(user_id, document_id)
        display_title = (title or file_name.rsplit(".", 1)[0] or file_name)[
            : self._settings.title_max_length
        ]
        now = utcnow()
        document = Document(
            document_id=document_id,
            user_id=user_id,
            title=display_title,
            file_name=file_name,
            source_kind="pdf",
            file_size=len(data),
            status="processing",
            storage_path=storage_path,
            created_at=now,
            updated_at=now,
        )

        uploaded = False
        try:
            await self._blobs.upload(data, storage_path, "application/pdf")
            uploaded = True
            await self._store.create_document(document)
        except Exception as e:
            logger.exception(f"Upload of {file_name} failed; cleaning up")
            if uploaded:
                try:
                    await self._blobs.delete(storage_path)
                except Exception:
                    logger.exception(f"Failed to remove orphaned blob {storage_path}")
            try:
                await self._store.delete_document(document_id)
            except Exception:
                logger.exception(f"Failed to remove partial record {document_id}")
            raise AppError(
                "Failed to upload document", code="UPLOAD_FAILED", status_code=500
            ) from e

        logger.info(f"Uploaded PDF document {document_id} ({len(data)} bytes) for user {user_id}")
        self._orchestrator.start(document_id)
        return document

    async def get_document(self, user_id: str, document_id: str) -> Document:
        """Get an owned document.

        Raises:
            DocumentNotFoundError: Missing or owned by another user
        """
        document = await self._store.get_document(document_id)
        if document is None or document.user_id != user_id:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_documents(self, user_id: str, limit: int = 20) -> list[Document]:
        """The user's documents, newest first."""
        return await self._store.list_documents(user_id, limit=limit)

    async def cancel_document(self, user_id: str, document_id: str) -> dict[str, object]:
        """Cancel an unfinished document."""
        return await self._orchestrator.cancel(user_id, document_id)

    async def delete_document(self, user_id: str, document_id: str) -> None:
        """Delete a document with its chunks and chats, then its vectors and file.

        Vector and file removal are best-effort; failures are logged.
        """
        document = await self.get_document(user_id, document_id)

        await self._store.delete_document(document_id)

        try:
            await self._indexer.delete_document_vectors(user_id, document_id)
        except Exception:
            logger.exception(f"Failed to delete vectors for document {document_id}")

        if document.storage_path:
            try:
                await self._blobs.delete(document.storage_path)
            except Exception:
                logger.exception(f"Failed to delete stored file for document {document_id}")

        logger.info(f"Deleted document {document_id} for user {user_id}")
