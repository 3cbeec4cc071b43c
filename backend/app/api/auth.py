"""Minimal auth dependency.

Stub implementation that reads the user id from a bearer token. Token
verification belongs to the identity provider in front of this service.
Requests without a header are rejected unless ``ALLOW_ANONYMOUS`` is set,
in which case they run as a shared test user.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext

DEFAULT_TEST_USER = "test-user"


async def get_current_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts ``Bearer <user_id>``; with no header the default test user is
    used when anonymous access is enabled.

    Raises:
        HTTPException: If authorization is missing or malformed
    """
    if not authorization:
        if settings.allow_anonymous:
            return RequestContext(user_id=DEFAULT_TEST_USER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = authorization[7:].strip()  # Strip "Bearer "
    if not user_id or any(c.isspace() for c in user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(user_id=user_id)
