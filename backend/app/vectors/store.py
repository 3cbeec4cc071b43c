"""Vector store backends (Pinecone and in-memory).

Every call is scoped to a namespace; the application uses the owning user's
id as namespace, so one user's vectors are never visible to another.
"""

import asyncio
import logging
import math
from typing import Any, Protocol

from pinecone import Pinecone

from backend.app.models.embeddings import VectorMatch, VectorRecord

logger = logging.getLogger(__name__)


class VectorStore(Protocol):
    """Protocol for namespace-scoped vector storage."""

    async def upsert(self, vectors: list[VectorRecord], *, namespace: str) -> None:
        """Insert or replace vectors."""
        ...

    async def query(
        self,
        vector: list[float],
        *,
        namespace: str,
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Nearest neighbours by cosine similarity, best first."""
        ...

    async def delete_by_ids(self, ids: list[str], *, namespace: str) -> None:
        """Delete vectors by id."""
        ...

    async def delete_by_filter(self, filter: dict[str, Any], *, namespace: str) -> None:
        """Delete vectors whose metadata matches ``filter``."""
        ...


class PineconeVectorStore:
    """Pinecone-backed vector store.

    The Pinecone SDK is synchronous; calls run in a worker thread.
    """

    def __init__(self, api_key: str, index_name: str) -> None:
        self.index_name = index_name
        self._client = Pinecone(api_key=api_key)
        self._index = self._client.Index(index_name)
        logger.info(f"Connected to Pinecone index '{index_name}'")

    async def upsert(self, vectors: list[VectorRecord], *, namespace: str) -> None:
        """Upsert vectors."""
        payload = [
            {"id": v.id, "values": v.values, "metadata": v.metadata.model_dump()} for v in vectors
        ]
        await asyncio.to_thread(self._index.upsert, vectors=payload, namespace=namespace)

    async def query(
        self,
        vector: list[float],
        *,
        namespace: str,
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Similarity query."""
        response = await asyncio.to_thread(
            self._index.query,
            vector=vector,
            top_k=top_k,
            namespace=namespace,
            filter=filter,
            include_metadata=True,
        )
        return [
            VectorMatch(id=match.id, score=match.score or 0.0, metadata=match.metadata or {})
            for match in response.matches
        ]

    async def delete_by_ids(self, ids: list[str], *, namespace: str) -> None:
        """Delete vectors by id."""
        if not ids:
            return
        await asyncio.to_thread(self._index.delete, ids=ids, namespace=namespace)

    async def delete_by_filter(self, filter: dict[str, Any], *, namespace: str) -> None:
        """Delete vectors by metadata filter."""
        await asyncio.to_thread(self._index.delete, filter=filter, namespace=namespace)


def _matches_filter(metadata: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Evaluate a Pinecone-style filter (plain values and ``$eq``)."""
    if not filter:
        return True
    for key, condition in filter.items():
        expected = condition.get("$eq") if isinstance(condition, dict) else condition
        if metadata.get(key) != expected:
            return False
    return True


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors (0.0 when either is all zeros)."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorStore:
    """Brute-force cosine-similarity store for tests and local development."""

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, VectorRecord]] = {}

    async def upsert(self, vectors: list[VectorRecord], *, namespace: str) -> None:
        bucket = self.namespaces.setdefault(namespace, {})
        for record in vectors:
            bucket[record.id] = record.model_copy(deep=True)

    async def query(
        self,
        vector: list[float],
        *,
        namespace: str,
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        matches = [
            VectorMatch(
                id=record.id,
                score=cosine_similarity(vector, record.values),
                metadata=record.metadata.model_dump(),
            )
            for record in self.namespaces.get(namespace, {}).values()
            if _matches_filter(record.metadata.model_dump(), filter)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def delete_by_ids(self, ids: list[str], *, namespace: str) -> None:
        bucket = self.namespaces.get(namespace, {})
        for vector_id in ids:
            bucket.pop(vector_id, None)

    async def delete_by_filter(self, filter: dict[str, Any], *, namespace: str) -> None:
        bucket = self.namespaces.get(namespace, {})
        for vector_id in [
            vid for vid, rec in bucket.items() if _matches_filter(rec.metadata.model_dump(), filter)
        ]:
            del bucket[vector_id]
