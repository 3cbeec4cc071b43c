"""Input validation for document creation and upload."""

from backend.app.errors import ValidationError

PDF_HEADER = b"%PDF-"
PDF_CONTENT_TYPE = "application/pdf"


def validate_title(title: str | None, *, max_length: int = 100) -> str:
    """Title must be 1..max_length characters and not blank."""
    if not title or not title.strip():
        raise ValidationError(
            "Title must not be empty",
            code="INVALID_TITLE",
            details={"title_length": 0, "min_length": 1},
        )
    if len(title) > max_length:
        raise ValidationError(
            f"Title must be between 1 and {max_length} characters",
            code="INVALID_TITLE",
            details={"title_length": len(title), "max_length": max_length},
        )
    return title.strip()


def validate_text_content(
    content: str | None, *, min_length: int = 10, max_length: int = 50_000
) -> str:
    """Pasted text must have ``min_length`` non-blank characters and fit ``max_length``."""
    content = content or ""
    stripped_length = len(content.strip())
    if stripped_length < min_length:
        raise ValidationError(
            f"Text content must be at least {min_length} characters",
            code="TEXT_TOO_SHORT",
            details={"content_length": stripped_length, "min_length": min_length},
        )
    if len(content) > max_length:
        raise ValidationError(
            f"Text content exceeds maximum length of {max_length:,} characters",
            code="TEXT_TOO_LONG",
            details={"content_length": len(content), "max_length": max_length},
        )
    return content


def validate_pdf_upload(data: bytes, content_type: str | None, *, max_bytes: int) -> None:
    """Check presence, type, size and the ``%PDF-`` signature of an upload."""
    if not data:
        raise ValidationError("No file uploaded", code="NO_FILE_PROVIDED")
    if content_type and content_type != PDF_CONTENT_TYPE:
        raise ValidationError(
            "Only PDF files are supported",
            code="INVALID_FILE_TYPE",
            details={"received_type": content_type, "supported_types": [PDF_CONTENT_TYPE]},
        )
    if len(data) > max_bytes:
        raise ValidationError(
            f"File exceeds maximum size of {max_bytes // (1024 * 1024)}MB",
            code="FILE_TOO_LARGE",
            details={"max_size": max_bytes},
        )
    if not data.startswith(PDF_HEADER):
        raise ValidationError(
            "The PDF file appears to be corrupted or invalid",
            code="INVALID_PDF_FILE",
            details={"reason": "Missing PDF header"},
        )
