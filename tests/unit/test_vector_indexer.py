"""Unit tests for the vector indexer."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from backend.app.errors import ConfigurationError, ProcessingError, ValidationError
from backend.app.models.embeddings import ChunkMetadata, EmbeddingResult
from backend.app.utils.retry import BatchRetrier
from backend.app.vectors.indexer import VectorIndexer, document_filter, vector_id
from backend.app.vectors.store import InMemoryVectorStore

DIMS = 4


def embedding(index: int, page: int = 1, dims: int = DIMS) -> EmbeddingResult:
    return EmbeddingResult(
        vector=[1.0] + [0.0] * (dims - 1),
        metadata=ChunkMetadata(page_number=page, chunk_index=index, text_preview=f"preview {index}"),
    )


def test_vector_ids_are_deterministic() -> None:
    assert vector_id("doc-9", 3) == "doc-9_3"


def test_document_filter_matches_user_and_document() -> None:
    assert document_filter("u1", "d1") == {
        "user_id": {"$eq": "u1"},
        "document_id": {"$eq": "d1"},
    }


@pytest.mark.asyncio
async def test_upsert_writes_into_user_namespace_with_metadata(
    vectors: InMemoryVectorStore, make_retrier: Callable[..., BatchRetrier]
) -> None:
    indexer = VectorIndexer(vectors, make_retrier(), dimensions=DIMS, batch_size=2)

    count = await indexer.upsert_document_embeddings(
        "u1", "d1", [embedding(0), embedding(1, page=2), embedding(2, page=2)]
    )

    assert count == 3
    assert set(vectors.namespaces) == {"u1"}
    stored = vectors.namespaces["u1"]
    assert sorted(stored) == ["d1_0", "d1_1", "d1_2"]
    meta = stored["d1_1"].metadata
    assert (meta.user_id, meta.document_id, meta.page_number, meta.chunk_index) == ("u1", "d1", 2, 1)
    assert meta.text_preview == "preview 1"


@pytest.mark.asyncio
async def test_reupsert_replaces_instead_of_duplicating(
    vectors: InMemoryVectorStore, make_retrier: Callable[..., BatchRetrier]
) -> None:
    indexer = VectorIndexer(vectors, make_retrier(), dimensions=DIMS)

    await indexer.upsert_document_embeddings("u1", "d1", [embedding(0), embedding(1)])
    await indexer.upsert_document_embeddings("u1", "d1", [embedding(0), embedding(1)])

    assert len(vectors.namespaces["u1"]) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "embeddings",
    [
        [],
        [embedding(0), embedding(0)],
        [embedding(-1)],
        [embedding(0, dims=3)],
    ],
    ids=["empty", "duplicate", "negative", "dimensions"],
)
async def test_invalid_embeddings_are_rejected_before_writing(
    embeddings: list[EmbeddingResult],
    vectors: InMemoryVectorStore,
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    indexer = VectorIndexer(vectors, make_retrier(), dimensions=DIMS)

    with pytest.raises(ValidationError):
        await indexer.upsert_document_embeddings("u1", "d1", embeddings)

    assert vectors.namespaces == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(("user_id", "document_id"), [("", "d1"), ("u1", "  ")])
async def test_blank_ids_are_rejected(
    user_id: str, document_id: str, vectors: InMemoryVectorStore
) -> None:
    indexer = VectorIndexer(vectors, dimensions=DIMS)

    with pytest.raises(ValidationError):
        await indexer.upsert_document_embeddings(user_id, document_id, [embedding(0)])


@pytest.mark.asyncio
async def test_missing_store_is_a_configuration_error() -> None:
    indexer = VectorIndexer(None, dimensions=DIMS)

    with pytest.raises(ConfigurationError):
        await indexer.upsert_document_embeddings("u1", "d1", [embedding(0)])


@pytest.mark.asyncio
async def test_batches_retry_independently_and_all_are_joined(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    store = AsyncMock()
    attempts: dict[str, int] = {}

    async def upsert(batch: list, *, namespace: str) -> None:
        first = batch[0].id
        attempts[first] = attempts.get(first, 0) + 1
        if first == "d1_2" and attempts[first] == 1:
            raise RuntimeError("timeout")

    store.upsert.side_effect = upsert
    indexer = VectorIndexer(store, make_retrier(max_attempts=3), dimensions=DIMS, batch_size=2)

    count = await indexer.upsert_document_embeddings(
        "u1", "d1", [embedding(i) for i in range(5)]
    )

    assert count == 5
    assert attempts == {"d1_0": 1, "d1_2": 2, "d1_4": 1}


@pytest.mark.asyncio
async def test_exhausted_batch_fails_the_call(make_retrier: Callable[..., BatchRetrier]) -> None:
    store = AsyncMock()
    store.upsert.side_effect = RuntimeError("pinecone unavailable")
    indexer = VectorIndexer(store, make_retrier(max_attempts=2), dimensions=DIMS)

    with pytest.raises(ProcessingError):
        await indexer.upsert_document_embeddings("u1", "d1", [embedding(0)])

    assert store.upsert.await_count == 2


@pytest.mark.asyncio
async def test_delete_document_vectors_only_touches_that_document(
    vectors: InMemoryVectorStore, make_retrier: Callable[..., BatchRetrier]
) -> None:
    indexer = VectorIndexer(vectors, make_retrier(), dimensions=DIMS)
    await indexer.upsert_document_embeddings("u1", "d1", [embedding(0), embedding(1)])
    await indexer.upsert_document_embeddings("u1", "d2", [embedding(0)])

    await indexer.delete_document_vectors("u1", "d1")

    assert sorted(vectors.namespaces["u1"]) == ["d2_0"]


@pytest.mark.asyncio
async def test_delete_by_ids_with_no_ids_is_a_no_op() -> None:
    store = AsyncMock()
    indexer = VectorIndexer(store, dimensions=DIMS)

    await indexer.delete_vectors_by_ids("u1", [])

    store.delete_by_ids.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_by_ids_is_split_into_pinecone_sized_requests() -> None:
    store = AsyncMock()
    indexer = VectorIndexer(store, dimensions=DIMS)
    ids = [vector_id("d1", i) for i in range(2500)]

    await indexer.delete_vectors_by_ids("u1", ids)

    assert store.delete_by_ids.await_count == 3
    sent = [call.args[0] for call in store.delete_by_ids.await_args_list]
    assert [len(batch) for batch in sent] == [1000, 1000, 500]
    assert [i for batch in sent for i in batch] == ids
    assert all(call.kwargs == {"namespace": "u1"} for call in store.delete_by_ids.await_args_list)


@pytest.mark.asyncio
async def test_delete_batch_size_is_configurable() -> None:
    store = AsyncMock()
    indexer = VectorIndexer(store, dimensions=DIMS, delete_batch_size=2)

    await indexer.delete_vectors_by_ids("u1", ["a", "b", "c"])

    assert store.delete_by_ids.await_count == 2
