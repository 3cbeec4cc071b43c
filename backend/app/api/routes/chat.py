"""Chat endpoints - ask, stream (SSE) and history."""

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import envelope, get_services
from backend.app.container import Services
from backend.app.db.context import RequestContext
from backend.app.models.chat import NewChatMessage, format_sse

router = APIRouter(prefix="/documents/{document_id}/chat", tags=["chat"])
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    """Request body for POST /documents/{id}/chat and /chat/stream."""

    question: str = ""
    chat_id: str | None = Field(None, max_length=200)


class AppendMessagesRequest(BaseModel):
    """Request body for POST /documents/{id}/chat/history."""

    chat_id: str = Field(..., max_length=200)
    messages: list[NewChatMessage]


@router.post("")
async def ask(
    document_id: str,
    request: ChatRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Answer a question about a document."""
    answer = await services.chat.ask(
        ctx.user_id, document_id, request.question, chat_id=request.chat_id
    )
    return envelope(answer.model_dump(mode="json"))


@router.post("/stream")
async def ask_stream(
    document_id: str,
    request: ChatRequest,
    http_request: Request,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> StreamingResponse:
    """Stream an answer as Server-Sent Events.

    Retrieval errors are returned as regular error responses; failures once
    the stream is open arrive as an ``error`` event.
    """
    retrieval = await services.chat.retrieve(ctx.user_id, document_id, request.question)

    async def event_stream() -> AsyncIterator[str]:
        events = services.chat.stream(
            ctx.user_id, document_id, request.question, retrieval, chat_id=request.chat_id
        )
        async with contextlib.aclosing(events):
            async for event in events:
                if await http_request.is_disconnected():
                    logger.info(f"Client disconnected from answer stream for {document_id}")
                    return
                yield format_sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/history")
async def get_history(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
    chat_id: Annotated[str, Query(min_length=1, max_length=200)],
    before: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> dict[str, Any]:
    """Recent messages, or archived ones older than ``before``."""
    if before is None:
        history = await services.history.get_recent_messages(
            ctx.user_id, document_id, chat_id, limit=limit
        )
    else:
        history = await services.history.get_older_messages(
            ctx.user_id, document_id, chat_id, before=before, limit=limit
        )
    return envelope(history.model_dump(mode="json"))


@router.post("/history")
async def append_history(
    document_id: str,
    request: AppendMessagesRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Append messages to a chat."""
    appended = await services.history.append_messages(
        ctx.user_id, document_id, request.chat_id, request.messages
    )
    return envelope(
        {"chat_id": request.chat_id, "messages": [m.model_dump(mode="json") for m in appended]}
    )
