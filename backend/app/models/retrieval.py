"""Query retrieval models."""

from typing import Literal

from pydantic import BaseModel, Field

from backend.app.models.chat import ChatSource

RetrievalOutcome = Literal["ok", "no_context", "out_of_scope"]


class RetrievedChunk(BaseModel):
    """Chunk that survived the similarity threshold."""

    chunk_index: int
    page_number: int
    text: str
    snippet: str
    score: float


class RetrievalResult(BaseModel):
    """Context selected for answering one question."""

    outcome: RetrievalOutcome
    document_title: str | None = None
    chunks: list[RetrievedChunk] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    fallback_answer: str | None = None

    @property
    def sources(self) -> list[ChatSource]:
        """Citations for the retrieved chunks, in rank order."""
        return [ChatSource(page_number=c.page_number, snippet=c.snippet) for c in self.chunks]
