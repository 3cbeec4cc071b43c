"""Embedding generation for chunk batches."""

import asyncio
import logging

from backend.app.errors import AppError, ProcessingError, ValidationError
from backend.app.llm.provider import LLMProvider
from backend.app.models.embeddings import EmbeddingInput, EmbeddingResult
from backend.app.utils.retry import BatchRetrier

logger = logging.getLogger(__name__)


class EmbeddingGenerator:
    """Embeds chunk texts in concurrent, independently retried batches."""

    def __init__(
        self,
        provider: LLMProvider,
        retrier: BatchRetrier | None = None,
        *,
        dimensions: int = 768,
        batch_size: int = 100,
    ) -> None:
        self._provider = provider
        self._retrier = retrier or BatchRetrier("embedding")
        self.dimensions = dimensions
        self.batch_size = batch_size

    async def _embed_batch(self, batch: list[EmbeddingInput]) -> list[EmbeddingResult]:
        vectors = await self._provider.embed_documents([item.text for item in batch])
        if len(vectors) != len(batch):
            raise ValidationError(
                f"Provider returned {len(vectors)} embeddings for {len(batch)} inputs"
            )
        for vector, item in zip(vectors, batch):
            if len(vector) != self.dimensions:
                raise ValidationError(
                    f"Embedding for chunk {item.metadata.chunk_index} has {len(vector)} "
                    f"dimensions, expected {self.dimensions}"
                )
        return [
            EmbeddingResult(vector=list(vector), metadata=item.metadata)
            for vector, item in zip(vectors, batch)
        ]

    async def generate(self, inputs: list[EmbeddingInput]) -> list[EmbeddingResult]:
        """Embed every input; all or nothing.

        Returns:
            One result per input, in input order

        Raises:
            ValidationError: Empty input or malformed provider output
            RateLimitError: A batch stayed rate limited through all retries
            ProcessingError: A batch failed through all retries
        """
        if not inputs:
            raise ValidationError("No chunks to embed")

        batches = [
            inputs[i : i + self.batch_size] for i in range(0, len(inputs), self.batch_size)
        ]

        async def run_batch(batch_index: int, batch: list[EmbeddingInput]) -> list[EmbeddingResult]:
            return await self._retrier.run(
                lambda: self._embed_batch(batch),
                batch_index=batch_index,
                batch_size=len(batch),
            )

        outcomes = await asyncio.gather(
            *(run_batch(i, b) for i, b in enumerate(batches)), return_exceptions=True
        )

        failed = [
            (i, outcome) for i, outcome in enumerate(outcomes) if isinstance(outcome, BaseException)
        ]
        if failed:
            for _, error in failed:
                if isinstance(error, AppError):
                    raise error
            raise ProcessingError(
                f"Embedding failed for {len(failed)} of {len(batches)} batches",
                details={"failed_batches": [i for i, _ in failed]},
            ) from failed[0][1]

        results: list[EmbeddingResult] = []
        for outcome in outcomes:
            results.extend(outcome)  # type: ignore[arg-type]

        logger.info(
            f"Generated {len(results)} embeddings in {len(batches)} batch(es)",
            extra={"structured": {"count": len(results), "batches": len(batches)}},
        )
        return results
