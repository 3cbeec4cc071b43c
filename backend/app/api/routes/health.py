"""Health check endpoints.

- ``/health``: liveness, always 200
- ``/healthz``: document store connectivity plus which backends are in use
"""

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response

from backend.app.api.deps import get_services
from backend.app.container import Services

router = APIRouter()


async def check_store(services: Services) -> tuple[bool, str]:
    """Check document store connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        await services.store.ping()
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


def backend_names(services: Services) -> dict[str, str]:
    return {
        "store": type(services.store).__name__,
        "blobs": type(services.blobs).__name__,
        "vectors": type(services.vectors).__name__,
        "llm": type(services.provider).__name__,
    }


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any] | Response:
    """Health check endpoint.

    Returns:
        200 with component status if the store is reachable
        503 otherwise
    """
    db_ok, db_status = await check_store(services)

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {"db": db_status},
        "backends": backend_names(services),
    }

    if not db_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
