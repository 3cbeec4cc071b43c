"""Unit tests for document lifecycle operations."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.app.config import Settings
from backend.app.db.inmemory import InMemoryDocumentStore
from backend.app.docs.service import DocumentService
from backend.app.errors import AppError, DocumentNotFoundError, ValidationError
from backend.app.models.documents import Document
from backend.app.storage.blob import InMemoryBlobStore

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<<>>\nendobj\n"


@pytest.fixture
def orchestrator() -> MagicMock:
    return MagicMock()


@pytest.fixture
def indexer() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(
    store: InMemoryDocumentStore,
    blobs: InMemoryBlobStore,
    indexer: AsyncMock,
    orchestrator: MagicMock,
) -> DocumentService:
    return DocumentService(store, blobs, indexer, orchestrator, Settings())


@pytest.mark.asyncio
async def test_create_text_document_starts_ingestion(
    service: DocumentService, store: InMemoryDocumentStore, orchestrator: MagicMock
) -> None:
    document = await service.create_text_document(
        "user-1", "  Handbook ", "The warranty period is twenty four months."
    )

    assert document.title == "Handbook"
    assert document.status == "processing"
    assert document.source_kind == "text"
    assert document.page_count == 1
    assert await store.get_document(document.document_id) is not None
    orchestrator.start.assert_called_once_with(document.document_id)


@pytest.mark.asyncio
async def test_create_text_document_rejects_short_text(
    service: DocumentService, store: InMemoryDocumentStore, orchestrator: MagicMock
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service.create_text_document("user-1", "Notes", "short")

    assert exc_info.value.code == "TEXT_TOO_SHORT"
    assert await store.list_documents("user-1") == []
    orchestrator.start.assert_not_called()


@pytest.mark.asyncio
async def test_upload_pdf_stores_blob_and_record(
    service: DocumentService, blobs: InMemoryBlobStore, orchestrator: MagicMock
) -> None:
    document = await service.upload_pdf_document("user-1", "Manual.pdf", PDF_BYTES)

    assert document.title == "Manual"
    assert document.source_kind == "pdf"
    assert document.storage_path == f"users/user-1/documents/{document.document_id}.pdf"
    assert await blobs.download(document.storage_path) == PDF_BYTES
    orchestrator.start.assert_called_once_with(document.document_id)


@pytest.mark.asyncio
async def test_upload_failure_removes_the_stored_file(
    service: DocumentService,
    store: InMemoryDocumentStore,
    blobs: InMemoryBlobStore,
    orchestrator: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(store, "create_document", AsyncMock(side_effect=RuntimeError("db down")))

    with pytest.raises(AppError) as exc_info:
        await service.upload_pdf_document("user-1", "Manual.pdf", PDF_BYTES)

    assert exc_info.value.code == "UPLOAD_FAILED"
    assert exc_info.value.status_code == 500
    assert blobs.objects == {}
    orchestrator.start.assert_not_called()


@pytest.mark.asyncio
async def test_foreign_document_is_not_found(
    service: DocumentService,
    store: InMemoryDocumentStore,
    make_document: Callable[..., Document],
) -> None:
    await store.create_document(make_document())

    with pytest.raises(DocumentNotFoundError):
        await service.get_document("intruder", "doc-1")
    with pytest.raises(DocumentNotFoundError):
        await service.delete_document("intruder", "doc-1")

    assert await store.get_document("doc-1") is not None


@pytest.mark.asyncio
async def test_delete_continues_when_vector_cleanup_fails(
    service: DocumentService,
    store: InMemoryDocumentStore,
    blobs: InMemoryBlobStore,
    indexer: AsyncMock,
    make_document: Callable[..., Document],
) -> None:
    path = "users/user-1/documents/doc-1.pdf"
    await blobs.upload(PDF_BYTES, path, "application/pdf")
    await store.create_document(
        make_document(status="ready", source_kind="pdf", content=None, storage_path=path)
    )
    indexer.delete_document_vectors.side_effect = RuntimeError("pinecone down")

    await service.delete_document("user-1", "doc-1")

    assert await store.get_document("doc-1") is None
    assert blobs.objects == {}
    indexer.delete_document_vectors.assert_awaited_once_with("user-1", "doc-1")


@pytest.mark.asyncio
async def test_minimum_length_text_is_accepted(service: DocumentService) -> None:
    document = await service.create_text_document("user-1", "Digits", "1234567890")

    assert document.page_count == 1
    assert document.status == "processing"
    assert document.file_size == 10
