"""Wiring of the pipeline collaborators from settings."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.chat.history import ChatHistoryArchiver
from backend.app.chat.service import ChatService
from backend.app.config import Settings
from backend.app.db.engine import create_all, create_async_engine_from_settings, create_session_factory
from backend.app.db.inmemory import InMemoryDocumentStore
from backend.app.db.repositories import DocumentStore
from backend.app.db.sql_store import SqlDocumentStore
from backend.app.docs.embeddings import EmbeddingGenerator
from backend.app.docs.extractor import TextExtractor
from backend.app.docs.ingest import IngestionOrchestrator
from backend.app.docs.service import DocumentService
from backend.app.llm.provider import LLMProvider, create_provider
from backend.app.rag.answer import AnswerGenerator
from backend.app.rag.retriever import QueryRetriever
from backend.app.storage.blob import BlobStore, InMemoryBlobStore, LocalBlobStore
from backend.app.utils.logging import StructuredBatchLogger
from backend.app.utils.metrics import PrometheusPipelineMetrics
from backend.app.utils.retry import BatchRetrier, RetryConfig
from backend.app.vectors.indexer import VectorIndexer
from backend.app.vectors.store import InMemoryVectorStore, PineconeVectorStore, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer needs, built once per process."""

    settings: Settings
    store: DocumentStore
    blobs: BlobStore
    vectors: VectorStore
    provider: LLMProvider
    orchestrator: IngestionOrchestrator
    documents: DocumentService
    chat: ChatService
    history: ChatHistoryArchiver
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        """Wait for running ingestions, then release the database engine."""
        await self.orchestrator.wait_idle()
        if self.engine is not None:
            await self.engine.dispose()


async def build_store(settings: Settings) -> tuple[DocumentStore, AsyncEngine | None]:
    if not settings.database_url:
        logger.warning("DATABASE_URL not set, using in-memory document store")
        return InMemoryDocumentStore(), None

    engine = create_async_engine_from_settings(settings)
    if engine.url.get_backend_name() == "sqlite":
        await create_all(engine)
    return SqlDocumentStore(create_session_factory(engine)), engine


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_storage_dir:
        return LocalBlobStore(settings.blob_storage_dir)
    logger.warning("BLOB_STORAGE_DIR not set, uploaded files are kept in memory")
    return InMemoryBlobStore()


def build_vector_store(settings: Settings) -> VectorStore:
    if settings.pinecone_api_key:
        return PineconeVectorStore(
            api_key=settings.pinecone_api_key.get_secret_value(),
            index_name=settings.pinecone_index,
        )
    logger.warning("PINECONE_API_KEY not set, using in-memory vector store")
    return InMemoryVectorStore()


async def build_services(settings: Settings) -> Services:
    """Construct all collaborators from settings.

    Raises:
        ConfigurationError: Invalid LLM provider configuration
    """
    store, engine = await build_store(settings)
    blobs = build_blob_store(settings)
    vectors = build_vector_store(settings)
    provider = create_provider(settings)

    metrics = PrometheusPipelineMetrics()
    batch_logger = StructuredBatchLogger()
    retry_config = RetryConfig.from_settings(settings)

    embedder = EmbeddingGenerator(
        provider,
        BatchRetrier("embedding", retry_config, metrics, batch_logger),
        dimensions=settings.embedding_dimensions,
        batch_size=settings.embedding_batch_size,
    )
    indexer = VectorIndexer(
        vectors,
        BatchRetrier("vector_upsert", retry_config, metrics, batch_logger),
        dimensions=settings.embedding_dimensions,
        batch_size=settings.vector_batch_size,
        delete_batch_size=settings.vector_delete_batch_size,
    )
    orchestrator = IngestionOrchestrator(
        store,
        blobs,
        TextExtractor(store, blobs),
        embedder,
        indexer,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        write_batch_size=settings.chunk_write_batch_size,
        metrics=metrics,
    )
    history = ChatHistoryArchiver(
        store,
        live_window=settings.chat_live_window,
        page_size=settings.chat_archive_page_size,
        max_attempts=settings.chat_append_max_attempts,
    )
    retriever = QueryRetriever(
        store,
        vectors,
        provider,
        top_k=settings.retrieval_top_k,
        threshold=settings.similarity_threshold,
        metrics=metrics,
    )

    return Services(
        settings=settings,
        store=store,
        blobs=blobs,
        vectors=vectors,
        provider=provider,
        orchestrator=orchestrator,
        documents=DocumentService(store, blobs, indexer, orchestrator, settings),
        chat=ChatService(retriever, AnswerGenerator(provider), history),
        history=history,
        engine=engine,
    )
