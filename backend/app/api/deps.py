"""Shared route dependencies and the response envelope."""

from typing import Any

from fastapi import Request

from backend.app.container import Services
from backend.app.db.repositories import utcnow


def get_services(request: Request) -> Services:
    """Services built in the application lifespan."""
    services: Services = request.app.state.services
    return services


def envelope(data: Any) -> dict[str, Any]:
    """Wrap a successful payload."""
    return {"success": True, "data": data, "meta": {"timestamp": utcnow().isoformat()}}


def error_envelope(error: dict[str, Any]) -> dict[str, Any]:
    """Wrap an ``{code, message, details?}`` error payload."""
    return {"success": False, "error": error, "meta": {"timestamp": utcnow().isoformat()}}
