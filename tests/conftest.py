from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest

from widget_gateway.assistant import AssistantRunner
from widget_gateway.config import Settings
from widget_gateway.transcripts import TranscriptLogger


def text_message(role: str, text: str) -> SimpleNamespace:
    return SimpleNamespace(
        role=role,
        content=[SimpleNamespace(type="text", text=SimpleNamespace(value=text))],
    )


class FakeRuns:
    """Hands out the given statuses in order, repeating the last one."""

    def __init__(self, statuses: List[str], error: Optional[Exception] = None) -> None:
        self.statuses = list(statuses)
        self.error = error
        self.created: List[Dict] = []
        self.retrieved = 0
        self.cancelled: List[str] = []

    def _next_status(self) -> str:
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    async def create(self, thread_id: str, assistant_id: str) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        self.created.append({"thread_id": thread_id, "assistant_id": assistant_id})
        return SimpleNamespace(id="run_1", status=self._next_status())

    async def retrieve(self, run_id: str, thread_id: str) -> SimpleNamespace:
        self.retrieved += 1
        return SimpleNamespace(id=run_id, status=self._next_status())

    async def cancel(self, run_id: str, thread_id: str) -> SimpleNamespace:
        self.cancelled.append(run_id)
        return SimpleNamespace(id=run_id, status="cancelling")


class FakeMessages:
    def __init__(self, messages: list) -> None:
        self.messages = messages
        self.calls: List[Dict] = []

    async def list(self, thread_id: str, order: str = "desc", run_id: Optional[str] = None) -> SimpleNamespace:
        self.calls.append({"thread_id": thread_id, "order": order, "run_id": run_id})
        return SimpleNamespace(data=list(self.messages))


class FakeThreads:
    def __init__(self, runs: FakeRuns, messages: FakeMessages) -> None:
        self.runs = runs
        self.messages = messages
        self.created: List[List] = []

    async def create(self, messages: list) -> SimpleNamespace:
        self.created.append(messages)
        return SimpleNamespace(id=f"thread_{len(self.created)}")


class FakeAssistantClient:
    """Mimics the AsyncOpenAI beta.threads surface used by AssistantRunner."""

    def __init__(self, statuses=("queued", "in_progress", "completed"), reply="Hi there", messages=None, error=None):
        if messages is None:
            messages = [text_message("assistant", reply), text_message("user", "hello")]
        self.runs = FakeRuns(list(statuses), error=error)
        self.messages = FakeMessages(messages)
        self.threads = FakeThreads(self.runs, self.messages)
        self.beta = SimpleNamespace(threads=self.threads)


class FakeSupabase:
    """Records every insert attempt; optionally fails them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.inserts: List[Tuple[str, Dict]] = []
        self._table = None

    def table(self, name: str) -> "FakeSupabase":
        self._table = name
        return self

    def insert(self, row: dict) -> "FakeSupabase":
        self.inserts.append((self._table, row))
        return self

    def execute(self) -> SimpleNamespace:
        if self.fail:
            raise RuntimeError("datastore unavailable")
        return SimpleNamespace(data=[self.inserts[-1][1]])


@pytest.fixture(autouse=True)
def clear_gateway_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "SUPABASE_TABLE",
        "OPENAI_API_KEY",
        "OPENAI_ASSISTANT_ID",
        "CHATKIT_WORKFLOW_ID",
        "ALLOWED_ORIGINS",
        "RUN_POLL_INTERVAL",
        "RUN_POLL_MAX_INTERVAL",
        "RUN_TIMEOUT",
        "PORT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="sk-test", assistant_id="asst_test")


@pytest.fixture
def fake_client() -> FakeAssistantClient:
    return FakeAssistantClient()


@pytest.fixture
def fake_store() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_runner():
    def _make(client, assistant_id: Optional[str] = "asst_test", timeout: float = 2.0) -> AssistantRunner:
        return AssistantRunner(client, assistant_id, poll_interval=0.01, poll_max_interval=0.02, timeout=timeout)

    return _make


@pytest.fixture
def make_transcripts():
    def _make(store) -> TranscriptLogger:
        return TranscriptLogger(store, table="chat_logs")

    return _make


@pytest.fixture
def make_client():
    return FakeAssistantClient


@pytest.fixture
def make_store():
    return FakeSupabase


@pytest.fixture
def make_message():
    return text_message
