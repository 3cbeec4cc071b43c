"""Query retriever - guardrail, similarity search and confidence scoring."""

import asyncio
import logging

from backend.app.db.repositories import DocumentStore
from backend.app.errors import (
    AppError,
    ConfigurationError,
    DocumentNotFoundError,
    InvalidDocumentError,
    ProcessingError,
    UnauthorizedError,
    ValidationError,
)
from backend.app.llm.prompts import NO_CONTEXT_ANSWER, OUT_OF_SCOPE_ANSWER
from backend.app.llm.provider import LLMProvider
from backend.app.models.documents import TextChunk, make_preview
from backend.app.models.embeddings import VectorMatch
from backend.app.models.retrieval import RetrievalResult, RetrievedChunk
from backend.app.rag.guardrails import is_out_of_scope_question
from backend.app.utils.metrics import PipelineMetrics
from backend.app.vectors.indexer import document_filter
from backend.app.vectors.store import VectorStore

logger = logging.getLogger(__name__)


def compute_confidence(scores: list[float], threshold: float = 0.7) -> float:
    """Map the best similarity onto [0, 1].

    Scores at or below the threshold give 0; the range threshold..1.0 maps
    linearly onto 0.1..1.0.
    """
    if not scores:
        return 0.0
    best = max(scores)
    if best <= threshold:
        return 0.0
    scaled = (best - threshold) / (1 - threshold)
    return max(0.0, min(1.0, scaled * 0.9 + 0.1))


class QueryRetriever:
    """Finds the chunks of one document that answer a question."""

    def __init__(
        self,
        store: DocumentStore,
        vectors: VectorStore | None,
        provider: LLMProvider,
        *,
        top_k: int = 3,
        threshold: float = 0.7,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._store = store
        self._vectors = vectors
        self._provider = provider
        self.top_k = top_k
        self.threshold = threshold
        self._metrics = metrics or PipelineMetrics()

    async def retrieve(self, user_id: str, document_id: str, question: str) -> RetrievalResult:
        """Select context for a question.

        Raises:
            ValidationError: Blank ids or question
            ConfigurationError: No vector store
            DocumentNotFoundError: No such document
            UnauthorizedError: Document owned by someone else
            InvalidDocumentError: Document not ready
            ProcessingError: Embedding or search failed
        """
        if not user_id or not user_id.strip() or not document_id or not document_id.strip():
            raise ValidationError("Missing user_id or document_id")
        if not question or not question.strip():
            raise ValidationError("Question must not be empty")

        if is_out_of_scope_question(question):
            logger.info(f"Out-of-scope question refused for document {document_id}")
            self._metrics.inc_query("out_of_scope")
            return RetrievalResult(outcome="out_of_scope", fallback_answer=OUT_OF_SCOPE_ANSWER)

        if self._vectors is None:
            raise ConfigurationError("Vector index is not configured")

        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        if document.user_id != user_id:
            raise UnauthorizedError("You do not have permission to access this document")
        if document.status != "ready":
            raise InvalidDocumentError("Document is not ready for chat")

        try:
            query_vector = await self._provider.embed_query(question)
            matches = await self._vectors.query(
                query_vector,
                namespace=user_id,
                top_k=self.top_k,
                filter=document_filter(user_id, document_id),
            )
            relevant = [m for m in matches if m.score >= self.threshold]
            if not relevant:
                return self._no_context(document_id, document.title, matches)

            hydrated = await asyncio.gather(
                *(self._hydrate(document_id, match) for match in relevant)
            )
        except AppError:
            raise
        except Exception as e:
            raise ProcessingError(f"Retrieval failed: {e}") from e

        chunks = [chunk for chunk in hydrated if chunk is not None]
        if not chunks:
            return self._no_context(document_id, document.title, matches)

        confidence = compute_confidence([c.score for c in chunks], self.threshold)
        self._metrics.inc_query("ok")
        logger.info(
            f"Retrieved {len(chunks)} chunk(s) for document {document_id}",
            extra={
                "structured": {
                    "document_id": document_id,
                    "top_score": max(c.score for c in chunks),
                    "confidence": confidence,
                }
            },
        )
        return RetrievalResult(
            outcome="ok",
            document_title=document.title,
            chunks=chunks,
            confidence=confidence,
        )

    def _no_context(
        self, document_id: str, title: str, matches: list[VectorMatch]
    ) -> RetrievalResult:
        logger.info(
            f"No relevant context for document {document_id}",
            extra={"structured": {"scores": [round(m.score, 4) for m in matches]}},
        )
        self._metrics.inc_query("no_context")
        return RetrievalResult(
            outcome="no_context", document_title=title, fallback_answer=NO_CONTEXT_ANSWER
        )

    async def _hydrate(self, document_id: str, match: VectorMatch) -> RetrievedChunk | None:
        chunk_index = match.metadata.get("chunk_index")
        if chunk_index is None:
            logger.warning(f"Vector {match.id} has no chunk_index metadata")
            return None

        chunk: TextChunk | None = await self._store.get_chunk(document_id, int(chunk_index))
        if chunk is None:
            logger.warning(f"Chunk {chunk_index} of document {document_id} missing; skipped")
            return None

        return RetrievedChunk(
            chunk_index=chunk.chunk_index,
            page_number=chunk.page_number,
            text=chunk.text,
            snippet=make_preview(chunk.text),
            score=match.score,
        )
