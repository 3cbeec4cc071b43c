"""Typed application errors shared by the pipelines and the HTTP layer.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer renders it with. Pipeline code raises these; ``main.py`` turns them
into the response envelope.
"""

from typing import Any


class AppError(Exception):
    """Base class for all expected application failures."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the error envelope."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """Input failed validation. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class DocumentNotFoundError(AppError):
    """Document missing, or owned by someone else."""

    code = "DOCUMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, document_id: str, **kwargs: Any) -> None:
        super().__init__(f"Document {document_id} not found", **kwargs)
        self.document_id = document_id


class UnauthorizedError(AppError):
    """Requester does not own the resource."""

    code = "UNAUTHORIZED"
    status_code = 403


class InvalidDocumentError(AppError):
    """Document is in a state that does not allow the operation."""

    code = "INVALID_DOCUMENT"
    status_code = 409


class CancelNotAllowedError(AppError):
    """Ready documents cannot be cancelled."""

    code = "CANCEL_NOT_ALLOWED"
    status_code = 409


class RateLimitError(AppError):
    """Upstream provider kept rate limiting after all retries."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429


class ProcessingError(AppError):
    """Unexpected failure inside a pipeline step."""

    code = "PROCESSING_ERROR"
    status_code = 500


class ConfigurationError(AppError):
    """A required collaborator is not configured."""

    code = "CONFIGURATION_ERROR"
    status_code = 500


class PdfExtractionFailedError(AppError):
    """Stored binary could not be parsed as a PDF."""

    code = "PDF_EXTRACTION_FAILED"
    status_code = 400


class DocumentAccessFailedError(AppError):
    """Stored binary could not be read from blob storage."""

    code = "DOCUMENT_ACCESS_FAILED"
    status_code = 500
