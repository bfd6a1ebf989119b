import asyncio

import pytest

from widget_gateway.config import Settings
from widget_gateway.errors import PersistenceError
from widget_gateway.transcripts import (
    TranscriptKind,
    TranscriptLogger,
    TranscriptRecord,
    create_supabase_client,
)


def _question(text: str = "hello") -> TranscriptRecord:
    return TranscriptRecord("u1", text, TranscriptKind.USER_QUESTION)


def test_unconfigured_logger_skips_writes() -> None:
    logger = TranscriptLogger(None)

    assert not logger.connected
    asyncio.run(logger.save(_question()))
    assert asyncio.run(logger.save_quietly(_question())) is True


def test_create_client_only_when_url_and_key_are_set() -> None:
    assert create_supabase_client(Settings(supabase_url="https://x.supabase.co")) is None
    assert create_supabase_client(Settings()) is None


def test_save_inserts_row_into_table(make_store) -> None:
    store = make_store()
    logger = TranscriptLogger(store, table="widget_logs")

    asyncio.run(logger.save(TranscriptRecord("u1", "Hi there", TranscriptKind.AI_ANSWER)))

    assert store.inserts == [("widget_logs", {"user_id": "u1", "text": "Hi there", "kind": "ai_answer"})]


def test_save_raises_persistence_error_with_store_message(make_store) -> None:
    logger = TranscriptLogger(make_store(fail=True))

    with pytest.raises(PersistenceError, match="datastore unavailable"):
        asyncio.run(logger.save(_question()))


def test_save_quietly_reports_failure_without_raising(make_store) -> None:
    store = make_store(fail=True)
    logger = TranscriptLogger(store)

    assert asyncio.run(logger.save_quietly(_question())) is False
    assert len(store.inserts) == 1


def test_background_save_is_tracked_until_done(make_store) -> None:
    store = make_store()
    logger = TranscriptLogger(store)

    async def scenario():
        task = logger.save_in_background(_question("queued"))
        assert task is not None
        await logger.drain()
        return task

    task = asyncio.run(scenario())

    assert task.result() is True
    assert store.inserts[0][1]["text"] == "queued"
    assert logger._pending == set()


def test_background_save_without_client_returns_none() -> None:
    async def scenario():
        return TranscriptLogger(None).save_in_background(_question())

    assert asyncio.run(scenario()) is None
