"""Chat history archival - bounded live window plus append-only archive pages.

Each chat keeps at most ``live_window`` recent messages on its thread
record. Older messages move into immutable archive pages of at most
``page_size`` messages. Reading the archive pages oldest first and then the
live window reproduces the conversation in order.
"""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone

from backend.app.db.repositories import ConcurrentModificationError, DocumentStore, utcnow
from backend.app.errors import DocumentNotFoundError, ProcessingError, ValidationError
from backend.app.models.chat import ArchivePage, ChatHistory, ChatMessage, NewChatMessage

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


def parse_cursor(before: str) -> datetime:
    """Parse an ISO-8601 cursor; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(before.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError("Invalid before cursor", details={"before": before}) from e
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ChatHistoryArchiver:
    """Appends and pages through per-document chat history."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        live_window: int = 100,
        page_size: int = 100,
        max_attempts: int = 5,
    ) -> None:
        self._store = store
        self.live_window = live_window
        self.page_size = page_size
        self.max_attempts = max_attempts

    def _check_ids(self, user_id: str, document_id: str, chat_id: str) -> None:
        for name, value in (("user_id", user_id), ("document_id", document_id), ("chat_id", chat_id)):
            if not value or not value.strip():
                raise ValidationError(f"{name} is required")

    def _check_limit(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("Invalid limit", details={"limit": limit})

    async def _require_owned(self, user_id: str, document_id: str) -> None:
        document = await self._store.get_document(document_id)
        if document is None or document.user_id != user_id:
            raise DocumentNotFoundError(document_id)

    async def append_messages(
        self,
        user_id: str,
        document_id: str,
        chat_id: str,
        messages: list[NewChatMessage],
    ) -> list[ChatMessage]:
        """Append messages, archiving whatever overflows the live window.

        The live window and new archive pages are written together under an
        optimistic version check; on conflict the thread is re-read and the
        merge recomputed.

        Returns:
            The appended messages with their server timestamps
        """
        self._check_ids(user_id, document_id, chat_id)
        if not messages:
            raise ValidationError("At least one message is required")
        for i, message in enumerate(messages):
            if not message.content or not message.content.strip():
                raise ValidationError(
                    "Message content must not be empty", details={"index": i}
                )
        await self._require_owned(user_id, document_id)

        for attempt in range(1, self.max_attempts + 1):
            thread = await self._store.get_chat(document_id, chat_id)
            existing = thread.messages if thread else []
            version = thread.version if thread else 0

            now = utcnow()
            start = now
            if existing and existing[-1].timestamp >= start:
                start = existing[-1].timestamp + _TICK
            stamped = [
                ChatMessage(**m.model_dump(), timestamp=start + i * _TICK)
                for i, m in enumerate(messages)
            ]

            combined = existing + stamped
            overflow_count = max(0, len(combined) - self.live_window)
            overflow, live = combined[:overflow_count], combined[overflow_count:]
            pages = await self._build_pages(user_id, document_id, chat_id, overflow, now)

            try:
                await self._store.save_chat(
                    document_id=document_id,
                    chat_id=chat_id,
                    user_id=user_id,
                    messages=live,
                    expected_version=version,
                    archive_pages=pages,
                )
            except ConcurrentModificationError:
                logger.info(f"Chat {chat_id} changed concurrently; retrying (attempt {attempt})")
                continue

            if pages:
                logger.info(
                    f"Archived {overflow_count} message(s) of chat {chat_id} into {len(pages)} page(s)",
                    extra={"structured": {"document_id": document_id, "chat_id": chat_id}},
                )
            return stamped

        raise ProcessingError(
            f"Could not append to chat {chat_id} after {self.max_attempts} attempts"
        )

    async def _build_pages(
        self,
        user_id: str,
        document_id: str,
        chat_id: str,
        overflow: list[ChatMessage],
        now: datetime,
    ) -> list[ArchivePage]:
        if not overflow:
            return []

        start = now
        latest = await self._store.list_archive_pages(document_id, chat_id, limit=1)
        if latest and latest[0].created_at >= start:
            start = latest[0].created_at + _TICK

        return [
            ArchivePage(
                page_id=uuid.uuid4().hex,
                document_id=document_id,
                chat_id=chat_id,
                user_id=user_id,
                created_at=start + n * _TICK,
                messages=overflow[i : i + self.page_size],
            )
            for n, i in enumerate(range(0, len(overflow), self.page_size))
        ]

    async def get_recent_messages(
        self, user_id: str, document_id: str, chat_id: str, limit: int = 100
    ) -> ChatHistory:
        """The latest ``limit`` live-window messages, oldest first."""
        self._check_ids(user_id, document_id, chat_id)
        self._check_limit(limit)
        await self._require_owned(user_id, document_id)

        thread = await self._store.get_chat(document_id, chat_id)
        messages = thread.messages[-limit:] if thread else []
        return ChatHistory(chat_id=chat_id, messages=messages)

    async def get_older_messages(
        self,
        user_id: str,
        document_id: str,
        chat_id: str,
        before: str | None = None,
        limit: int = 100,
    ) -> ChatHistory:
        """Archived messages from pages created before the cursor, oldest first.

        Returns the ``limit`` most recent of those messages.
        """
        self._check_ids(user_id, document_id, chat_id)
        self._check_limit(limit)
        cursor = parse_cursor(before) if before else None
        await self._require_owned(user_id, document_id)

        pages_needed = max(1, math.ceil(limit / self.page_size))
        collected: list[ArchivePage] = []
        count = 0
        while count < limit:
            batch = await self._store.list_archive_pages(
                document_id, chat_id, before=cursor, limit=pages_needed
            )
            if not batch:
                break
            collected.extend(batch)
            count += sum(len(p.messages) for p in batch)
            if len(batch) < pages_needed:
                break
            cursor = batch[-1].created_at

        collected.sort(key=lambda p: p.created_at)
        messages = [m for page in collected for m in page.messages]
        return ChatHistory(chat_id=chat_id, messages=messages[-limit:])
