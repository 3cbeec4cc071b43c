"""Document chunker - deterministic recursive text splitting."""

from collections import deque

from backend.app.errors import ValidationError
from backend.app.models.documents import (
    ChunkedDocument,
    ExtractedPage,
    TextChunk,
    make_preview,
)

DEFAULT_SEPARATORS = ("\n\n", "\n", ". ", " ", "")


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split on ``separator``, leaving it attached to the end of each piece."""
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]] + [parts[-1]]
    return [piece for piece in pieces if piece]


def _merge(pieces: list[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    """Pack pieces into chunks of at most ``chunk_size``, carrying overlap forward."""
    chunks: list[str] = []
    window: deque[str] = deque()
    total = 0

    for piece in pieces:
        if window and total + len(piece) > chunk_size:
            text = "".join(window).strip()
            if text:
                chunks.append(text)
            # Drop from the front until the tail fits as overlap and leaves room
            while window and (total > chunk_overlap or total + len(piece) > chunk_size):
                total -= len(window.popleft())
        window.append(piece)
        total += len(piece)

    text = "".join(window).strip()
    if text:
        chunks.append(text)
    return chunks


def split_text(
    text: str,
    *,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    separators: tuple[str, ...] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Recursively split text, preferring the coarsest separator that occurs.

    Pure function with no I/O or randomness. Pieces longer than
    ``chunk_size`` are split again with the next separator; the final empty
    separator cuts at character level, so every chunk fits ``chunk_size``.
    """
    separator = separators[-1]
    remaining: tuple[str, ...] = ()
    for i, candidate in enumerate(separators):
        if candidate == "" or candidate in text:
            separator = candidate
            remaining = separators[i + 1 :]
            break

    chunks: list[str] = []
    fitting: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if len(piece) <= chunk_size:
            fitting.append(piece)
            continue
        if fitting:
            chunks.extend(_merge(fitting, chunk_size, chunk_overlap))
            fitting = []
        if remaining:
            chunks.extend(
                split_text(
                    piece,
                    chunk_size=chunk_size,
                    chunk_overlap=chunk_overlap,
                    separators=remaining,
                )
            )
        else:
            chunks.append(piece)

    if fitting:
        chunks.extend(_merge(fitting, chunk_size, chunk_overlap))
    return chunks


def chunk_document(
    pages: list[ExtractedPage],
    *,
    document_id: str,
    user_id: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> ChunkedDocument:
    """Chunk extracted pages into globally indexed chunks.

    Each page is split on its own, so no chunk spans two pages. Indices are
    0-based and contiguous across pages; whitespace-only fragments are
    dropped before numbering.

    Raises:
        ValidationError: No pages, or overlap not smaller than chunk size
    """
    if not pages:
        raise ValidationError("Cannot chunk a document with no pages")
    if chunk_size <= 0 or chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValidationError(
            f"Invalid chunking parameters: size={chunk_size}, overlap={chunk_overlap}"
        )

    chunks: list[TextChunk] = []
    for page in pages:
        normalized = page.text.replace("\r\n", "\n").replace("\r", "\n")
        for text in split_text(normalized, chunk_size=chunk_size, chunk_overlap=chunk_overlap):
            if not text.strip():
                continue
            chunks.append(
                TextChunk(
                    chunk_index=len(chunks),
                    page_number=page.page_number,
                    text=text,
                    text_preview=make_preview(text),
                )
            )

    return ChunkedDocument(document_id=document_id, user_id=user_id, chunks=chunks)
