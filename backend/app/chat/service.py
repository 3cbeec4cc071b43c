"""Question answering over a document, with optional chat recording."""

import contextlib
import logging
from collections.abc import AsyncIterator

from backend.app.chat.history import ChatHistoryArchiver
from backend.app.errors import AppError
from backend.app.models.chat import (
    ChatAnswer,
    ChatSource,
    DoneEvent,
    ErrorEvent,
    NewChatMessage,
    StreamEvent,
)
from backend.app.models.retrieval import RetrievalResult
from backend.app.rag.answer import AnswerGenerator
from backend.app.rag.retriever import QueryRetriever

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(
        self,
        retriever: QueryRetriever,
        generator: AnswerGenerator,
        archiver: ChatHistoryArchiver,
    ) -> None:
        self._retriever = retriever
        self._generator = generator
        self._archiver = archiver

    async def retrieve(self, user_id: str, document_id: str, question: str) -> RetrievalResult:
        return await self._retriever.retrieve(user_id, document_id, question)

    async def ask(
        self,
        user_id: str,
        document_id: str,
        question: str,
        chat_id: str | None = None,
    ) -> ChatAnswer:
        """Answer a question in one response."""
        retrieval = await self.retrieve(user_id, document_id, question)
        answer = await self._generator.answer(retrieval, question)
        if chat_id:
            await self._record(user_id, document_id, chat_id, question, answer)
        return answer

    async def stream(
        self,
        user_id: str,
        document_id: str,
        question: str,
        retrieval: RetrievalResult,
        chat_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the answer for an already-completed retrieval.

        Failures after the first event become a single terminal ``error``
        event; nothing is recorded for a failed answer.
        """
        final: DoneEvent | None = None
        try:
            async with contextlib.aclosing(self._generator.stream(retrieval, question)) as events:
                async for event in events:
                    if isinstance(event, DoneEvent):
                        final = event
                    yield event
        except AppError as e:
            logger.warning(f"Answer stream for document {document_id} failed: {e.message}")
            yield ErrorEvent(code=e.code, message=e.message)
            return
        except Exception:
            logger.exception(f"Answer stream for document {document_id} failed")
            yield ErrorEvent(code="STREAM_FAILED", message="Failed to generate answer")
            return

        if chat_id and final is not None:
            answer = ChatAnswer(
                answer=final.answer, sources=final.sources, confidence=final.confidence
            )
            await self._record(user_id, document_id, chat_id, question, answer)

    async def _record(
        self,
        user_id: str,
        document_id: str,
        chat_id: str,
        question: str,
        answer: ChatAnswer,
    ) -> None:
        messages = [
            NewChatMessage(role="user", content=question.strip()),
            NewChatMessage(
                role="assistant",
                content=answer.answer,
                sources=[ChatSource(**s.model_dump()) for s in answer.sources],
            ),
        ]
        try:
            await self._archiver.append_messages(user_id, document_id, chat_id, messages)
        except Exception:
            logger.exception(f"Failed to record chat {chat_id} for document {document_id}")
