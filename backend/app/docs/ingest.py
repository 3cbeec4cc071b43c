"""Document ingestion - extract, chunk, embed and index in the background.

The pipeline runs as a detached asyncio task per document. Cancellation is
cooperative: a cancel request only sets a flag on the document record, and
the pipeline polls it at fixed checkpoints. A flagged or deleted document
stops the pipeline without any further status write.
"""

import asyncio
import logging
from typing import Any

from backend.app.db.repositories import DocumentStore, utcnow
from backend.app.docs.chunker import chunk_document
from backend.app.docs.embeddings import EmbeddingGenerator
from backend.app.docs.extractor import TextExtractor
from backend.app.errors import (
    AppError,
    CancelNotAllowedError,
    DocumentNotFoundError,
    ValidationError,
)
from backend.app.models.documents import Document
from backend.app.models.embeddings import ChunkMetadata, EmbeddingInput
from backend.app.storage.blob import BlobStore
from backend.app.utils.metrics import PipelineMetrics
from backend.app.vectors.indexer import VectorIndexer, vector_id

logger = logging.getLogger(__name__)


class PipelineStopped(Exception):
    """Raised at a checkpoint when the document was cancelled or deleted."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"Pipeline stopped {stage}: {reason}")
        self.stage = stage
        self.reason = reason


class IngestionOrchestrator:
    """Drives a document from upload to ``ready``."""

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        extractor: TextExtractor,
        embedder: EmbeddingGenerator,
        indexer: VectorIndexer,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        write_batch_size: int = 500,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._extractor = extractor
        self._embedder = embedder
        self._indexer = indexer
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.write_batch_size = write_batch_size
        self._metrics = metrics or PipelineMetrics()
        self._tasks: set[asyncio.Task[None]] = set()

    def start(self, document_id: str) -> asyncio.Task[None]:
        """Schedule ingestion without waiting for it."""
        task = asyncio.create_task(self.run(document_id), name=f"ingest-{document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled ingestion to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _checkpoint(self, document_id: str, stage: str) -> Document:
        document = await self._store.get_document(document_id)
        if document is None:
            raise PipelineStopped(stage, "deleted")
        if document.cancel_requested_at is not None:
            raise PipelineStopped(stage, "cancelled")
        return document

    async def run(self, document_id: str) -> None:
        """Run the whole pipeline. Never raises."""
        user_id: str | None = None
        chunks_written = False
        written_ids: list[str] = []

        try:
            document = await self._checkpoint(document_id, "before extraction")
            user_id = document.user_id

            extracted = await self._extractor.extract(document_id)
            await self._checkpoint(document_id, "after extraction")

            chunked = chunk_document(
                extracted.pages,
                document_id=document_id,
                user_id=user_id,
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
            )
            chunks = chunked.chunks
            if not chunks:
                raise ValidationError("Document contains no extractable text")

            for start in range(0, len(chunks), self.write_batch_size):
                await self._checkpoint(document_id, "during chunk persistence")
                chunks_written = True
                await self._store.put_chunks(
                    document_id, user_id, chunks[start : start + self.write_batch_size]
                )
            await self._checkpoint(document_id, "after chunk persistence")

            inputs = [
                EmbeddingInput(
                    text=chunk.text,
                    metadata=ChunkMetadata(
                        page_number=chunk.page_number,
                        chunk_index=chunk.chunk_index,
                        text_preview=chunk.text_preview,
                    ),
                )
                for chunk in chunks
            ]
            await self._checkpoint(document_id, "before embedding")
            embeddings = await self._embedder.generate(inputs)
            if len(embeddings) != len(chunks):
                raise ValidationError(
                    f"Embedding count {len(embeddings)} does not match chunk count {len(chunks)}"
                )

            await self._checkpoint(document_id, "before vector storage")
            vector_count = await self._indexer.upsert_document_embeddings(
                user_id, document_id, embeddings
            )
            written_ids = [vector_id(document_id, c.chunk_index) for c in chunks]
            await self._checkpoint(document_id, "after vector storage")

            updated = await self._store.update_document(
                document_id,
                status="ready",
                vector_count=vector_count,
                indexed_at=utcnow(),
                error_message=None,
            )
            if not updated:
                raise PipelineStopped("at completion", "deleted")

            self._metrics.inc_ingestion("ready")
            logger.info(
                f"Document {document_id} ready with {vector_count} vectors",
                extra={"structured": {"document_id": document_id, "chunks": len(chunks)}},
            )

        except PipelineStopped as stop:
            logger.info(f"Ingestion of {document_id} stopped {stop.stage}: {stop.reason}")
            if written_ids and user_id is not None:
                await self._discard_vectors(user_id, document_id, written_ids)
            if chunks_written:
                await self._discard_chunks(document_id)
            self._metrics.inc_ingestion(stop.reason)

        except DocumentNotFoundError:
            logger.info(f"Ingestion of {document_id} stopped: document deleted")
            self._metrics.inc_ingestion("deleted")

        except Exception as e:
            message = e.message if isinstance(e, AppError) else f"Processing failed: {e}"
            logger.error(
                f"Ingestion of {document_id} failed: {message}",
                exc_info=not isinstance(e, AppError),
                extra={"structured": {"document_id": document_id, "error": type(e).__name__}},
            )
            await self._mark_failed(document_id, message)
            self._metrics.inc_ingestion("error")

    async def _discard_vectors(self, user_id: str, document_id: str, ids: list[str]) -> None:
        try:
            await self._indexer.delete_vectors_by_ids(user_id, ids)
        except Exception:
            logger.exception(f"Failed to discard vectors of stopped document {document_id}")

    async def _discard_chunks(self, document_id: str) -> None:
        try:
            await self._store.delete_chunks(document_id)
        except Exception:
            logger.exception(f"Failed to discard chunks of stopped document {document_id}")

    async def _mark_failed(self, document_id: str, message: str) -> None:
        try:
            await self._store.update_document(document_id, status="error", error_message=message)
        except Exception:
            logger.exception(f"Failed to record error status for document {document_id}")

    async def cancel(self, user_id: str, document_id: str) -> dict[str, Any]:
        """Cancel an unfinished document and remove everything it produced.

        Cleanup runs vectors, chunks, stored file, then the record itself;
        a failing step is logged and the remaining steps still run.

        Raises:
            DocumentNotFoundError: Missing or owned by another user
            CancelNotAllowedError: The document is already ready
        """
        status = await self._store.flag_cancel_requested(document_id, user_id, utcnow())
        if status is None:
            raise DocumentNotFoundError(document_id)
        if status == "ready":
            raise CancelNotAllowedError(
                "Document has already been processed and cannot be cancelled",
                details={"document_id": document_id},
            )

        document = await self._store.get_document(document_id)
        storage_path = document.storage_path if document else None

        try:
            indices = await self._store.list_chunk_indices(document_id)
            await self._indexer.delete_vectors_by_ids(
                user_id, [vector_id(document_id, i) for i in indices]
            )
        except Exception:
            logger.exception(f"Cancel {document_id}: failed to delete vectors")

        try:
            await self._store.delete_chunks(document_id)
        except Exception:
            logger.exception(f"Cancel {document_id}: failed to delete chunks")

        if storage_path:
            try:
                await self._blobs.delete(storage_path)
            except Exception:
                logger.exception(f"Cancel {document_id}: failed to delete stored file")

        try:
            await self._store.delete_document(document_id)
        except Exception:
            logger.exception(f"Cancel {document_id}: failed to delete document record")

        logger.info(
            f"Cancelled document {document_id}",
            extra={"structured": {"document_id": document_id, "user_id": user_id}},
        )
        return {"document_id": document_id, "cancelled": True}
