"""Unit tests for answer generation (blocking and streamed)."""

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from backend.app.llm.prompts import (
    NO_CONTEXT_ANSWER,
    OUT_OF_SCOPE_ANSWER,
    SYSTEM_PROMPT,
    build_context,
    build_messages,
)
from backend.app.llm.provider import DeterministicStubProvider
from backend.app.models.chat import DeltaEvent, DoneEvent, format_sse
from backend.app.models.retrieval import RetrievalResult, RetrievedChunk
from backend.app.rag.answer import AnswerGenerator, finalize_answer


def ok_retrieval() -> RetrievalResult:
    return RetrievalResult(
        outcome="ok",
        document_title="Handbook",
        chunks=[
            RetrievedChunk(
                chunk_index=1,
                page_number=2,
                text="The warranty period is twenty four months.",
                snippet="The warranty period is twenty four months.",
                score=0.92,
            )
        ],
        confidence=0.82,
    )


class ScriptedProvider:
    """Provider whose stream yields fixed fragments and records closing."""

    def __init__(self, fragments: list[str]) -> None:
        self.fragments = fragments
        self.closed = False
        self.invoke = AsyncMock(return_value="unused")

    async def stream(self, messages: list) -> AsyncIterator[str]:
        try:
            for fragment in self.fragments:
                yield fragment
        finally:
            self.closed = True


def test_context_blocks_carry_title_and_page() -> None:
    context = build_context("Handbook", ok_retrieval().chunks)

    assert context == "[Source: Handbook, Page 2]\nThe warranty period is twenty four months."


@pytest.mark.parametrize("title", [None, ""])
def test_untitled_context_is_labelled_as_document(title: str | None) -> None:
    context = build_context(title, ok_retrieval().chunks)

    assert context.startswith("[Source: Document, Page 2]\n")


def test_messages_are_system_then_question() -> None:
    messages = build_messages("Handbook", ok_retrieval().chunks, "How long?")

    assert [m.role for m in messages] == ["system", "user"]
    assert messages[0].content == SYSTEM_PROMPT
    assert messages[1].content.startswith("Context:\n[Source: Handbook, Page 2]")
    assert messages[1].content.endswith("Question: How long?")


def test_finalize_clears_sources_for_refusals() -> None:
    answer = finalize_answer(f"  {NO_CONTEXT_ANSWER} ", ok_retrieval())

    assert answer.answer == NO_CONTEXT_ANSWER
    assert answer.sources == []
    assert answer.confidence == 0.0


@pytest.mark.asyncio
async def test_answer_uses_provider_and_attaches_sources() -> None:
    provider = AsyncMock()
    provider.invoke.return_value = "According to page 2, the warranty is 24 months."

    answer = await AnswerGenerator(provider).answer(ok_retrieval(), "How long is the warranty?")

    provider.invoke.assert_awaited_once()
    assert answer.answer == "According to page 2, the warranty is 24 months."
    assert answer.sources[0].page_number == 2
    assert answer.confidence == 0.82


@pytest.mark.asyncio
async def test_answer_for_untitled_document_names_it_document() -> None:
    provider = AsyncMock()
    provider.invoke.return_value = "According to page 2, the warranty is 24 months."
    retrieval = ok_retrieval().model_copy(update={"document_title": None})

    await AnswerGenerator(provider).answer(retrieval, "How long is the warranty?")

    messages = provider.invoke.await_args.args[0]
    assert "[Source: Document, Page 2]" in messages[1].content
    assert "[Source: , Page" not in messages[1].content


@pytest.mark.asyncio
async def test_no_context_answer_skips_the_model() -> None:
    provider = AsyncMock()
    retrieval = RetrievalResult(outcome="no_context", fallback_answer=NO_CONTEXT_ANSWER)

    answer = await AnswerGenerator(provider).answer(retrieval, "What about refunds?")

    provider.invoke.assert_not_awaited()
    assert answer.answer == NO_CONTEXT_ANSWER
    assert answer.sources == []
    assert answer.confidence == 0.0


@pytest.mark.asyncio
async def test_model_refusal_reports_zero_confidence() -> None:
    provider = AsyncMock()
    provider.invoke.return_value = NO_CONTEXT_ANSWER

    answer = await AnswerGenerator(provider).answer(ok_retrieval(), "Unrelated?")

    assert answer.sources == []
    assert answer.confidence == 0.0


@pytest.mark.asyncio
async def test_stream_yields_deltas_then_done() -> None:
    provider = ScriptedProvider(["According ", "", "to page 2, ", "24 months."])

    events = [e async for e in AnswerGenerator(provider).stream(ok_retrieval(), "How long?")]

    deltas = [e for e in events if isinstance(e, DeltaEvent)]
    assert [d.text for d in deltas] == ["According ", "to page 2, ", "24 months."]
    assert isinstance(events[-1], DoneEvent)
    assert events[-1].answer == "According to page 2, 24 months."
    assert events[-1].confidence == 0.82
    assert provider.closed


@pytest.mark.asyncio
async def test_stream_fallback_is_a_single_done_event() -> None:
    provider = ScriptedProvider(["never"])
    retrieval = RetrievalResult(outcome="out_of_scope", fallback_answer=OUT_OF_SCOPE_ANSWER)

    events = [e async for e in AnswerGenerator(provider).stream(retrieval, "Weather?")]

    assert len(events) == 1
    assert isinstance(events[0], DoneEvent)
    assert events[0].answer == OUT_OF_SCOPE_ANSWER
    assert events[0].sources == []


@pytest.mark.asyncio
async def test_closing_the_stream_early_closes_the_provider() -> None:
    provider = ScriptedProvider(["one ", "two ", "three"])
    stream = AnswerGenerator(provider).stream(ok_retrieval(), "How long?")

    first = await stream.__anext__()
    await stream.aclose()

    assert isinstance(first, DeltaEvent)
    assert provider.closed


@pytest.mark.asyncio
async def test_stub_provider_streams_an_answer_citing_the_page() -> None:
    events = [
        e
        async for e in AnswerGenerator(DeterministicStubProvider(dimensions=8)).stream(
            ok_retrieval(), "How long?"
        )
    ]

    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.answer.startswith("According to page 2,")


def test_sse_frames_name_the_event() -> None:
    frame = format_sse(DeltaEvent(text="hi"))

    assert frame == 'event: delta\ndata: {"text":"hi"}\n\n'
