"""Unit tests for document chunker."""

import pytest

from backend.app.docs.chunker import chunk_document, split_text
from backend.app.errors import ValidationError
from backend.app.models.documents import ExtractedPage


def _pages(*texts: str) -> list[ExtractedPage]:
    return [ExtractedPage(page_number=i + 1, text=t) for i, t in enumerate(texts)]


def test_simple_short_doc_returns_one_chunk() -> None:
    """A short single-page document yields one chunk with index 0."""
    result = chunk_document(
        _pages("This is a short document."), document_id="d1", user_id="u1"
    )

    assert len(result.chunks) == 1
    chunk = result.chunks[0]
    assert chunk.chunk_index == 0
    assert chunk.page_number == 1
    assert chunk.text == "This is a short document."
    assert chunk.text_preview == "This is a short document."
    assert result.document_id == "d1"
    assert result.user_id == "u1"


def test_long_text_splits_into_chunks_within_size() -> None:
    para1 = "A" * 400
    para2 = "B" * 400
    para3 = "C" * 400
    text = f"{para1}\n\n{para2}\n\n{para3}"

    chunks = split_text(text, chunk_size=500, chunk_overlap=100)

    assert len(chunks) == 3
    for chunk in chunks:
        assert len(chunk) <= 500
    assert chunks == [para1, para2, para3]


def test_oversized_unbroken_text_is_cut_at_character_level() -> None:
    chunks = split_text("X" * 2500, chunk_size=1000, chunk_overlap=200)

    assert all(len(c) <= 1000 for c in chunks)
    assert chunks[0] == "X" * 1000
    assert len(chunks) >= 3


def test_overlap_carries_trailing_words_into_next_chunk() -> None:
    words = [f"word{i:03d}" for i in range(300)]
    text = " ".join(words)

    chunks = split_text(text, chunk_size=200, chunk_overlap=50)

    assert len(chunks) > 1
    for first, second in zip(chunks, chunks[1:], strict=False):
        last_word = first.split()[-1]
        assert last_word in second.split()


def test_splitting_is_deterministic() -> None:
    text = "Sentence one. Sentence two.\n\nParagraph two line.\nAnother line. " * 80

    first = split_text(text, chunk_size=300, chunk_overlap=60)
    second = split_text(text, chunk_size=300, chunk_overlap=60)

    assert first == second


def test_chunks_never_span_pages_and_indices_are_global() -> None:
    result = chunk_document(
        _pages("Page one text.", "Page two text.", "Page three text."),
        document_id="d1",
        user_id="u1",
    )

    assert [c.chunk_index for c in result.chunks] == [0, 1, 2]
    assert [c.page_number for c in result.chunks] == [1, 2, 3]
    assert result.chunks[1].text == "Page two text."


def test_blank_pages_produce_no_chunks() -> None:
    result = chunk_document(
        _pages("First page.", "   \n\n  ", "Third page."),
        document_id="d1",
        user_id="u1",
    )

    assert [c.page_number for c in result.chunks] == [1, 3]
    assert [c.chunk_index for c in result.chunks] == [0, 1]


def test_windows_line_endings_are_normalized() -> None:
    result = chunk_document(
        _pages("Line one.\r\nLine two.\r\n\r\nNext paragraph."),
        document_id="d1",
        user_id="u1",
        chunk_size=20,
        chunk_overlap=0,
    )

    assert all("\r" not in c.text for c in result.chunks)


def test_preview_is_first_200_characters() -> None:
    text = "word " * 150
    result = chunk_document(_pages(text), document_id="d1", user_id="u1")

    for chunk in result.chunks:
        assert chunk.text_preview == chunk.text[:200]


def test_no_pages_is_rejected() -> None:
    with pytest.raises(ValidationError):
        chunk_document([], document_id="d1", user_id="u1")


@pytest.mark.parametrize(("size", "overlap"), [(0, 0), (100, 100), (100, -1)])
def test_invalid_parameters_are_rejected(size: int, overlap: int) -> None:
    with pytest.raises(ValidationError):
        chunk_document(
            _pages("text"), document_id="d1", user_id="u1", chunk_size=size, chunk_overlap=overlap
        )
