"""Text extraction from stored PDFs and pasted text."""

import asyncio
import io
import logging
import time

from pypdf import PdfReader

from backend.app.db.repositories import DocumentStore, utcnow
from backend.app.errors import (
    AppError,
    DocumentAccessFailedError,
    DocumentNotFoundError,
    InvalidDocumentError,
    PdfExtractionFailedError,
)
from backend.app.models.documents import ExtractedPage, ExtractedText, make_preview
from backend.app.storage.blob import BlobStore

logger = logging.getLogger(__name__)


def extract_pdf_pages(data: bytes) -> list[ExtractedPage]:
    """Extract text page by page, numbered from 1.

    Pages whose text cannot be extracted are kept empty so page numbers
    stay aligned with the PDF.

    Raises:
        PdfReadError: The bytes are not a readable PDF
    """
    reader = PdfReader(io.BytesIO(data))
    pages: list[ExtractedPage] = []
    for i, page in enumerate(reader.pages):
        try:
            text = page.extract_text() or ""
        except Exception as e:
            logger.warning(f"Failed to extract text from page {i + 1}: {e}")
            text = ""
        pages.append(ExtractedPage(page_number=i + 1, text=text))
    return pages


class TextExtractor:
    """Loads a document's source and turns it into page-addressed text."""

    def __init__(self, store: DocumentStore, blobs: BlobStore) -> None:
        self._store = store
        self._blobs = blobs

    async def extract(self, document_id: str) -> ExtractedText:
        """Extract text and record extraction metadata on the document.

        Raises:
            DocumentNotFoundError: No such document
            InvalidDocumentError: Neither a stored binary nor inline text
            DocumentAccessFailedError: Stored binary could not be read
            PdfExtractionFailedError: Stored binary is not a readable PDF
        """
        started = time.monotonic()
        try:
            document = await self._store.get_document(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)

            if document.storage_path:
                pages = await self._extract_pdf(document.storage_path)
            elif document.content is not None:
                pages = [ExtractedPage(page_number=1, text=document.content)]
            else:
                raise InvalidDocumentError(
                    "Document has neither a stored file nor text content",
                    status_code=400,
                )

            extracted = ExtractedText(page_count=len(pages), pages=pages)
            duration_ms = int((time.monotonic() - started) * 1000)
            await self._store.update_document(
                document_id,
                status="processing",
                page_count=extracted.page_count,
                extracted_at=utcnow(),
                extraction_duration_ms=duration_ms,
                text_preview=make_preview(pages[0].text) if pages else "",
            )
            logger.info(
                f"Extracted {extracted.page_count} page(s) from document {document_id}",
                extra={"structured": {"document_id": document_id, "duration_ms": duration_ms}},
            )
            return extracted

        except DocumentNotFoundError:
            raise
        except AppError as e:
            await self._mark_failed(document_id, e.message)
            raise
        except Exception as e:
            await self._mark_failed(document_id, f"Text extraction failed: {e}")
            raise

    async def _extract_pdf(self, storage_path: str) -> list[ExtractedPage]:
        try:
            data = await self._blobs.download(storage_path)
        except Exception as e:
            raise DocumentAccessFailedError(
                "Failed to read the stored document", details={"path": storage_path}
            ) from e

        try:
            return await asyncio.to_thread(extract_pdf_pages, data)
        except Exception as e:
            raise PdfExtractionFailedError(
                "The PDF could not be read; it may be corrupted or password protected"
            ) from e

    async def _mark_failed(self, document_id: str, message: str) -> None:
        try:
            await self._store.update_document(document_id, status="error", error_message=message)
        except Exception:
            logger.exception(f"Failed to record extraction error for document {document_id}")
