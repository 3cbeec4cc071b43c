"""Document endpoints - create, upload, list, status, cancel, delete."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel

from backend.app.api.auth import get_current_context
from backend.app.api.deps import envelope, get_services
from backend.app.container import Services
from backend.app.db.context import RequestContext
from backend.app.models.documents import DocumentSummary

router = APIRouter(prefix="/documents", tags=["documents"])


class CreateTextDocumentRequest(BaseModel):
    """Request body for POST /documents/text.

    Lengths are checked by the service so failures carry specific codes.
    """

    title: str | None = None
    content: str | None = None


@router.post("/text", status_code=status.HTTP_201_CREATED)
async def create_text_document(
    request: CreateTextDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Store pasted text and start ingestion."""
    document = await services.documents.create_text_document(
        ctx.user_id, request.title or "", request.content or ""
    )
    return envelope(DocumentSummary.from_document(document).model_dump(mode="json"))


async def read_upload(file: UploadFile | None, max_bytes: int) -> bytes:
    """Read at most ``max_bytes + 1`` bytes; a longer read means the upload is too large."""
    if file is None:
        return b""
    return await file.read(max_bytes + 1)


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
    file: Annotated[UploadFile | None, File()] = None,
    title: Annotated[str | None, Form()] = None,
) -> dict[str, Any]:
    """Store an uploaded PDF and start ingestion."""
    data = await read_upload(file, services.settings.max_upload_bytes)
    document = await services.documents.upload_pdf_document(
        ctx.user_id,
        file_name=(file.filename if file is not None else None) or "document.pdf",
        data=data,
        content_type=file.content_type if file is not None else None,
        title=title,
    )
    return envelope(DocumentSummary.from_document(document).model_dump(mode="json"))


@router.get("")
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    """List the caller's documents, newest first."""
    documents = await services.documents.list_documents(ctx.user_id, limit=limit)
    return envelope(
        {"documents": [DocumentSummary.from_document(d).model_dump(mode="json") for d in documents]}
    )


@router.get("/{document_id}/status")
async def get_document_status(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Processing status of one document."""
    document = await services.documents.get_document(ctx.user_id, document_id)
    return envelope(DocumentSummary.from_document(document).model_dump(mode="json"))


@router.post("/{document_id}/cancel")
async def cancel_document(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Cancel ingestion and remove everything created for the document."""
    result = await services.documents.cancel_document(ctx.user_id, document_id)
    return envelope(result)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Delete a document and its derived data."""
    await services.documents.delete_document(ctx.user_id, document_id)
    return envelope({"document_id": document_id, "deleted": True})
