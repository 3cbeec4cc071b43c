"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator, Callable, Iterator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.config import Settings, get_settings
from backend.app.db.engine import create_session_factory
from backend.app.db.inmemory import InMemoryDocumentStore
from backend.app.db.models import Base
from backend.app.db.repositories import utcnow
from backend.app.db.sql_store import SqlDocumentStore
from backend.app.llm.provider import DeterministicStubProvider
from backend.app.models.documents import Document
from backend.app.storage.blob import InMemoryBlobStore
from backend.app.utils.retry import BatchRetrier, RetryConfig
from backend.app.vectors.store import InMemoryVectorStore


async def _no_sleep(seconds: float) -> None:
    return None


def _make_document(
    document_id: str = "doc-1",
    user_id: str = "user-1",
    **overrides: object,
) -> Document:
    """Document record with sensible defaults for tests."""
    now = utcnow()
    fields: dict[str, object] = {
        "document_id": document_id,
        "user_id": user_id,
        "title": "Handbook",
        "file_name": "Handbook.txt",
        "source_kind": "text",
        "file_size": 40,
        "page_count": 1,
        "status": "processing",
        "content": "The warranty period is twenty four months.",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Document.model_validate(fields)


def _make_retrier(operation: str = "test", max_attempts: int = 3) -> BatchRetrier:
    """Retrier that never actually sleeps."""
    return BatchRetrier(
        operation,
        RetryConfig(max_attempts=max_attempts, base_backoff_ms=1, jitter_max_ms=0),
        sleep_fn=_no_sleep,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def vectors() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def provider() -> DeterministicStubProvider:
    return DeterministicStubProvider(dimensions=768)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(sqlite_engine: AsyncEngine) -> SqlDocumentStore:
    return SqlDocumentStore(create_session_factory(sqlite_engine))


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires TEST_POSTGRES_URL to be set to a real PostgreSQL connection
    string. Tests using this fixture should be marked with
    @pytest.mark.postgres.
    """
    database_url = os.getenv("TEST_POSTGRES_URL")
    if not database_url:
        pytest.skip("TEST_POSTGRES_URL not set - skipping postgres test")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[Settings]:
    """Settings for an app wired to in-memory backends and the stub provider."""
    monkeypatch.setenv("LLM_PROVIDER", "stub")
    monkeypatch.setenv("RETRY_BASE_BACKOFF_MS", "1")
    monkeypatch.setenv("RETRY_JITTER_MAX_MS", "0")
    for name in ("DATABASE_URL", "PINECONE_API_KEY", "OPENAI_API_KEY", "BLOB_STORAGE_DIR"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Test client with the application lifespan running.

    The client keeps one event loop for all requests, so background
    ingestion tasks survive between calls.
    """
    from backend.app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_document() -> Callable[..., Document]:
    return _make_document


@pytest.fixture
def make_retrier() -> Callable[..., BatchRetrier]:
    return _make_retrier


@pytest.fixture
def wait_for_ingestion(client: TestClient) -> Callable[[], None]:
    """Block until every background ingestion has finished."""

    def wait() -> None:
        services = client.app.state.services  # type: ignore[attr-defined]
        client.portal.call(services.orchestrator.wait_idle)  # type: ignore[union-attr]

    return wait
