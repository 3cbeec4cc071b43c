"""Vector indexer - validates embeddings and upserts them in batches."""

import asyncio
import logging

from backend.app.errors import ConfigurationError, ValidationError
from backend.app.models.embeddings import EmbeddingResult, VectorMetadata, VectorRecord
from backend.app.utils.retry import BatchRetrier
from backend.app.vectors.store import VectorStore

logger = logging.getLogger(__name__)


def vector_id(document_id: str, chunk_index: int) -> str:
    """Deterministic vector id for a chunk."""
    return f"{document_id}_{chunk_index}"


def document_filter(user_id: str, document_id: str) -> dict[str, dict[str, str]]:
    """Metadata filter selecting one user's document."""
    return {"user_id": {"$eq": user_id}, "document_id": {"$eq": document_id}}


class VectorIndexer:
    """Writes chunk embeddings into the user's namespace."""

    def __init__(
        self,
        store: VectorStore | None,
        retrier: BatchRetrier | None = None,
        *,
        dimensions: int = 768,
        batch_size: int = 100,
        delete_batch_size: int = 1000,
    ) -> None:
        self._store = store
        self._retrier = retrier or BatchRetrier("vector_upsert")
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.delete_batch_size = delete_batch_size

    def _require_store(self) -> VectorStore:
        if self._store is None:
            raise ConfigurationError("Vector store is not configured")
        return self._store

    def _validate(self, user_id: str, document_id: str, embeddings: list[EmbeddingResult]) -> None:
        if not user_id or not user_id.strip():
            raise ValidationError("user_id is required")
        if not document_id or not document_id.strip():
            raise ValidationError("document_id is required")
        if not embeddings:
            raise ValidationError("No embeddings to index")

        seen: set[int] = set()
        for position, embedding in enumerate(embeddings):
            index = embedding.metadata.chunk_index
            if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                raise ValidationError(
                    f"Invalid chunk_index {index!r} at position {position}",
                    details={"position": position},
                )
            if index in seen:
                raise ValidationError(
                    f"Duplicate chunk_index {index}", details={"chunk_index": index}
                )
            seen.add(index)
            if len(embedding.vector) != self.dimensions:
                raise ValidationError(
                    f"Embedding for chunk {index} has {len(embedding.vector)} dimensions, "
                    f"expected {self.dimensions}",
                    details={"chunk_index": index},
                )

    async def upsert_document_embeddings(
        self,
        user_id: str,
        document_id: str,
        embeddings: list[EmbeddingResult],
    ) -> int:
        """Upsert all embeddings of a document.

        Batches run concurrently, each under its own retry policy; the call
        returns only after every batch has finished.

        Returns:
            Number of vectors written

        Raises:
            ValidationError: Bad ids, duplicate/negative indices or wrong dimensions
            ConfigurationError: No vector store configured
            RateLimitError | ProcessingError: A batch exhausted its retries
        """
        self._validate(user_id, document_id, embeddings)
        store = self._require_store()

        records = [
            VectorRecord(
                id=vector_id(document_id, e.metadata.chunk_index),
                values=e.vector,
                metadata=VectorMetadata(
                    user_id=user_id,
                    document_id=document_id,
                    page_number=e.metadata.page_number,
                    chunk_index=e.metadata.chunk_index,
                    text_preview=e.metadata.text_preview,
                ),
            )
            for e in embeddings
        ]
        batches = [
            records[i : i + self.batch_size] for i in range(0, len(records), self.batch_size)
        ]

        async def upsert_batch(batch_index: int, batch: list[VectorRecord]) -> None:
            await self._retrier.run(
                lambda: store.upsert(batch, namespace=user_id),
                batch_index=batch_index,
                batch_size=len(batch),
            )

        results = await asyncio.gather(
            *(upsert_batch(i, b) for i, b in enumerate(batches)), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        logger.info(
            f"Indexed {len(records)} vectors for document {document_id}",
            extra={"structured": {"document_id": document_id, "batches": len(batches)}},
        )
        return len(records)

    async def delete_vectors_by_ids(self, user_id: str, ids: list[str]) -> None:
        """Delete specific vectors from the user's namespace.

        Pinecone caps a delete request at 1000 ids, so ids are sent in
        sequential batches of ``delete_batch_size``.
        """
        if not ids:
            return
        store = self._require_store()
        for start in range(0, len(ids), self.delete_batch_size):
            batch = ids[start : start + self.delete_batch_size]
            await store.delete_by_ids(batch, namespace=user_id)

    async def delete_document_vectors(self, user_id: str, document_id: str) -> None:
        """Delete every vector of a document by metadata filter."""
        await self._require_store().delete_by_filter(
            document_filter(user_id, document_id), namespace=user_id
        )
