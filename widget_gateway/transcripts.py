# ============================================================================
# Transcript Persistence
# ----------------------------------------------------------------------------
# Appends one row per chat line (question or answer) to a Supabase table.
# Writes are best-effort: when no datastore is configured they are skipped,
# and the chat turn never fails because a write did.
# ============================================================================

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set

from supabase import create_client, Client

from .config import Settings
from .errors import PersistenceError

logger = logging.getLogger(__name__)


class TranscriptKind(str, Enum):
    USER_QUESTION = "user_question"
    AI_ANSWER = "ai_answer"


@dataclass(frozen=True)
class TranscriptRecord:
    user_id: str
    text: str
    kind: TranscriptKind

    def as_row(self) -> dict:
        # created_at is filled in by the table default
        return {
            "user_id": self.user_id,
            "text": self.text,
            "kind": self.kind.value,
        }


def create_supabase_client(settings: Settings) -> Optional[Client]:
    """Return a client when both URL and key are set, otherwise None."""
    if not settings.datastore_configured:
        return None
    return create_client(settings.supabase_url, settings.supabase_key)


class TranscriptLogger:
    """Writes TranscriptRecords; a None client turns every write into a no-op."""

    def __init__(self, client: Optional[Client], table: str = "chat_logs"):
        self._client = client
        self._table = table
        self._pending: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _insert(self, record: TranscriptRecord) -> None:
        # supabase-py is synchronous; this runs on a worker thread
        self._client.table(self._table).insert(record.as_row()).execute()

    async def save(self, record: TranscriptRecord) -> None:
        """
        Insert a record, raising PersistenceError with the store's message
        if the insert fails.
        """
        if self._client is None:
            return

        try:
            await asyncio.to_thread(self._insert, record)
        except Exception as exc:
            raise PersistenceError(f"Failed to save {record.kind.value}: {exc}") from exc

    async def save_quietly(self, record: TranscriptRecord) -> bool:
        """Insert a record and log, rather than raise, on failure."""
        try:
            await self.save(record)
        except PersistenceError as exc:
            logger.warning("%s", exc)
            return False
        return True

    def save_in_background(self, record: TranscriptRecord) -> Optional[asyncio.Task]:
        """
        Fire-and-forget write. The task is referenced until it finishes so
        the event loop does not drop it.
        """
        if self._client is None:
            return None

        task = asyncio.create_task(self.save_quietly(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        # Used at shutdown so queued writes get their single attempt
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
