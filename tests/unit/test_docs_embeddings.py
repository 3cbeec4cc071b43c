"""Unit tests for the embedding generator."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from backend.app.docs.embeddings import EmbeddingGenerator
from backend.app.errors import ProcessingError, RateLimitError, ValidationError
from backend.app.models.embeddings import ChunkMetadata, EmbeddingInput
from backend.app.utils.retry import BatchRetrier


def make_inputs(count: int) -> list[EmbeddingInput]:
    return [
        EmbeddingInput(
            text=f"chunk text {i}",
            metadata=ChunkMetadata(page_number=1, chunk_index=i, text_preview=f"chunk text {i}"),
        )
        for i in range(count)
    ]


def fake_provider(dimensions: int = 8) -> AsyncMock:
    provider = AsyncMock()

    async def embed(texts: list[str]) -> list[list[float]]:
        return [[float(int(t.rsplit(" ", 1)[1]))] * dimensions for t in texts]

    provider.embed_documents.side_effect = embed
    return provider


@pytest.mark.asyncio
async def test_250_inputs_use_three_batches_in_order(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    provider = fake_provider()
    generator = EmbeddingGenerator(provider, make_retrier(), dimensions=8, batch_size=100)

    results = await generator.generate(make_inputs(250))

    assert provider.embed_documents.await_count == 3
    batch_sizes = sorted(len(c.args[0]) for c in provider.embed_documents.await_args_list)
    assert batch_sizes == [50, 100, 100]
    assert len(results) == 250
    assert [r.metadata.chunk_index for r in results] == list(range(250))
    assert results[137].vector == [137.0] * 8


@pytest.mark.asyncio
async def test_empty_input_is_rejected(make_retrier: Callable[..., BatchRetrier]) -> None:
    generator = EmbeddingGenerator(fake_provider(), make_retrier(), dimensions=8)

    with pytest.raises(ValidationError):
        await generator.generate([])


@pytest.mark.asyncio
async def test_wrong_dimensions_fail_without_retry(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    provider = AsyncMock()
    provider.embed_documents.return_value = [[0.1] * 4]
    generator = EmbeddingGenerator(provider, make_retrier(), dimensions=8)

    with pytest.raises(ValidationError, match="dimensions"):
        await generator.generate(make_inputs(1))

    provider.embed_documents.assert_awaited_once()


@pytest.mark.asyncio
async def test_count_mismatch_is_a_validation_error(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    provider = AsyncMock()
    provider.embed_documents.return_value = [[0.1] * 8]
    generator = EmbeddingGenerator(provider, make_retrier(), dimensions=8)

    with pytest.raises(ValidationError):
        await generator.generate(make_inputs(2))


@pytest.mark.asyncio
async def test_transient_failure_is_retried(make_retrier: Callable[..., BatchRetrier]) -> None:
    provider = fake_provider()
    real_embed = provider.embed_documents.side_effect
    calls = {"n": 0}

    async def flaky(texts: list[str]) -> list[list[float]]:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("connection reset")
        return await real_embed(texts)

    provider.embed_documents.side_effect = flaky
    generator = EmbeddingGenerator(provider, make_retrier(max_attempts=3), dimensions=8)

    results = await generator.generate(make_inputs(3))

    assert len(results) == 3
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_one_failing_batch_fails_the_whole_call(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    provider = fake_provider()
    real_embed = provider.embed_documents.side_effect

    async def second_batch_fails(texts: list[str]) -> list[list[float]]:
        if texts[0] == "chunk text 2":
            raise RuntimeError("upstream 500")
        return await real_embed(texts)

    provider.embed_documents.side_effect = second_batch_fails
    generator = EmbeddingGenerator(provider, make_retrier(max_attempts=2), dimensions=8, batch_size=2)

    with pytest.raises(ProcessingError):
        await generator.generate(make_inputs(5))


@pytest.mark.asyncio
async def test_persistent_rate_limit_surfaces_as_rate_limit_error(
    make_retrier: Callable[..., BatchRetrier],
) -> None:
    provider = AsyncMock()
    provider.embed_documents.side_effect = RuntimeError("Rate limit exceeded (429)")
    generator = EmbeddingGenerator(provider, make_retrier(max_attempts=2), dimensions=8)

    with pytest.raises(RateLimitError):
        await generator.generate(make_inputs(1))

    assert provider.embed_documents.await_count == 2
