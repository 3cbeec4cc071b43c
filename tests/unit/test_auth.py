"""Unit tests for the auth dependency."""

import pytest
from fastapi import HTTPException

from backend.app.api.auth import DEFAULT_TEST_USER, get_current_context
from backend.app.config import Settings


@pytest.mark.asyncio
async def test_get_current_context_no_header_is_rejected_by_default() -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(settings=Settings(), authorization=None)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Missing authorization header"


@pytest.mark.asyncio
async def test_get_current_context_no_header_uses_test_user_when_anonymous_allowed() -> None:
    """Test that missing auth header uses the test user."""
    ctx = await get_current_context(settings=Settings(allow_anonymous=True), authorization=None)

    assert ctx.user_id == DEFAULT_TEST_USER


@pytest.mark.asyncio
async def test_get_current_context_bearer_user_id() -> None:
    ctx = await get_current_context(settings=Settings(), authorization="Bearer user-42")

    assert ctx.user_id == "user-42"


@pytest.mark.asyncio
async def test_get_current_context_invalid_bearer_format() -> None:
    """Test invalid bearer format raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(settings=Settings(), authorization="NotBearer token")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Bearer ", "Bearer    ", "Bearer two words"])
async def test_get_current_context_invalid_token(header: str) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(
            settings=Settings(allow_anonymous=True), authorization=header
        )

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Invalid bearer token"
