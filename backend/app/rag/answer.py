"""Answer generation over retrieved context, blocking or streamed."""

import contextlib
import logging
from collections.abc import AsyncIterator

from backend.app.llm.prompts import NO_CONTEXT_ANSWER, build_messages, is_fallback_answer
from backend.app.llm.provider import LLMProvider
from backend.app.models.chat import ChatAnswer, DeltaEvent, DoneEvent, StreamEvent
from backend.app.models.retrieval import RetrievalResult

logger = logging.getLogger(__name__)


def finalize_answer(answer: str, retrieval: RetrievalResult) -> ChatAnswer:
    """Attach sources and confidence, clearing both for refusals."""
    text = answer.strip()
    if not text or is_fallback_answer(text):
        return ChatAnswer(answer=text or NO_CONTEXT_ANSWER, sources=[], confidence=0.0)
    return ChatAnswer(answer=text, sources=retrieval.sources, confidence=retrieval.confidence)


class AnswerGenerator:
    """Turns a retrieval result into an answer."""

    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def answer(self, retrieval: RetrievalResult, question: str) -> ChatAnswer:
        """Generate the full answer in one provider call.

        Fallback retrievals return their fixed answer without calling the model.
        """
        if retrieval.outcome != "ok" or not retrieval.chunks:
            return finalize_answer(retrieval.fallback_answer or NO_CONTEXT_ANSWER, retrieval)

        messages = build_messages(retrieval.document_title, retrieval.chunks, question)
        text = await self._provider.invoke(messages)
        return finalize_answer(text, retrieval)

    async def stream(
        self, retrieval: RetrievalResult, question: str
    ) -> AsyncIterator[StreamEvent]:
        """Yield ``delta`` events as the model produces text, then one ``done``.

        Closing the generator early closes the provider stream as well.
        """
        if retrieval.outcome != "ok" or not retrieval.chunks:
            final = finalize_answer(retrieval.fallback_answer or NO_CONTEXT_ANSWER, retrieval)
            yield DoneEvent(**final.model_dump())
            return

        messages = build_messages(retrieval.document_title, retrieval.chunks, question)
        parts: list[str] = []
        async with contextlib.aclosing(self._provider.stream(messages)) as fragments:
            async for fragment in fragments:
                if not fragment:
                    continue
                parts.append(fragment)
                yield DeltaEvent(text=fragment)

        final = finalize_answer("".join(parts), retrieval)
        logger.info(
            f"Streamed answer with {len(parts)} fragment(s)",
            extra={"structured": {"fragments": len(parts), "confidence": final.confidence}},
        )
        yield DoneEvent(**final.model_dump())
