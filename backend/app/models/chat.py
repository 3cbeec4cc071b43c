"""Chat, answer and stream event models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ChatRole = Literal["user", "assistant"]


class ChatSource(BaseModel):
    """Page citation attached to an answer."""

    page_number: int
    snippet: str


class NewChatMessage(BaseModel):
    """Message submitted for archival; the server assigns the timestamp."""

    role: ChatRole
    content: str
    sources: list[ChatSource] = Field(default_factory=list)


class ChatMessage(NewChatMessage):
    """Stored chat message."""

    timestamp: datetime


class ChatHistory(BaseModel):
    """Messages of one chat, oldest first."""

    chat_id: str
    messages: list[ChatMessage]


class ArchivePage(BaseModel):
    """Immutable block of archived messages."""

    page_id: str
    document_id: str
    chat_id: str
    user_id: str
    created_at: datetime
    messages: list[ChatMessage]


class ChatAnswer(BaseModel):
    """Answer to a question about a document."""

    answer: str
    sources: list[ChatSource] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class DeltaEvent(BaseModel):
    """Partial answer text."""

    event: Literal["delta"] = "delta"
    text: str


class DoneEvent(ChatAnswer):
    """Terminal event carrying the full answer."""

    event: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    """Terminal event for a failure after streaming began."""

    event: Literal["error"] = "error"
    code: str
    message: str


StreamEvent = DeltaEvent | DoneEvent | ErrorEvent


def format_sse(event: StreamEvent) -> str:
    """Render an event as a Server-Sent Events frame."""
    data = event.model_dump_json(exclude={"event"})
    return f"event: {event.event}\ndata: {data}\n\n"
