# ============================================================================
# Assistant Run Orchestration
# ----------------------------------------------------------------------------
# One chat turn against an OpenAI Assistant:
#   1. create a fresh thread holding the user's message
#   2. start a run and poll it until it reaches a terminal status
#   3. read the newest assistant message and strip citation markers
#
# The run protocol is asynchronous on the provider side; here it is wrapped
# into a single awaitable with its own backoff and a hard deadline. Runs that
# end badly still produce a reply (a fallback sentence naming the status);
# only transport/provider errors and deadline overruns abort the turn.
# ============================================================================

import re
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import openai
from openai import AsyncOpenAI

from .config import Settings
from .errors import ConfigMissingError, ErrorKind, ErrorResult, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"


TERMINAL_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.EXPIRED,
    RunStatus.CANCELLED,
})

# Provider-injected reference annotations, e.g. 【4:0†source】
CITATION_PATTERN = re.compile(r"【[^】]*】")

BACKOFF_FACTOR = 1.5
CANCEL_TIMEOUT = 5.0
NO_REPLY_TEXT = "Sorry, I don't have an answer for that right now."


@dataclass
class ConversationRun:
    thread_id: str
    status: RunStatus
    reply: Optional[str] = None
    error: Optional[ErrorResult] = None  # set when the run degraded to a fallback reply


# ============================================================================
# Reply Helpers
# ============================================================================

def sanitize_reply(text: str) -> str:
    """Remove every 【...】 citation marker and trim the result."""
    return CITATION_PATTERN.sub("", text).strip()


def fallback_reply(status: RunStatus) -> str:
    return f"Sorry, I couldn't finish answering that (run status: {status.value}). Please try again."


def latest_assistant_text(messages: Iterable) -> Optional[str]:
    """
    Given thread messages newest first, return the first text segment of
    the newest assistant-authored message, skipping the echoed user turn.
    """
    for message in messages:
        if getattr(message, "role", None) != "assistant":
            continue
        for block in getattr(message, "content", None) or []:
            if getattr(block, "type", None) == "text":
                return block.text.value
        return None
    return None


def _coerce_status(raw) -> Optional[RunStatus]:
    try:
        return RunStatus(raw)
    except ValueError:
        return None


# ============================================================================
# Runner
# ============================================================================

class AssistantRunner:
    """Drives one thread + run per call. Holds no per-turn state."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        assistant_id: Optional[str],
        poll_interval: float = 0.5,
        poll_max_interval: float = 4.0,
        timeout: float = 60.0,
    ):
        self._client = client
        self._assistant_id = assistant_id
        self._poll_interval = poll_interval
        self._poll_max_interval = max(poll_interval, poll_max_interval)
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssistantRunner":
        # AsyncOpenAI refuses to construct without a key, so only build it when set
        client = None
        if settings.openai_api_key:
            client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.run_timeout)
        return cls(
            client,
            settings.assistant_id,
            poll_interval=settings.poll_interval,
            poll_max_interval=settings.poll_max_interval,
            timeout=settings.run_timeout,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None and bool(self._assistant_id)

    async def run_turn(self, message: str) -> ConversationRun:
        """
        Execute one conversational turn and return the resolved run with
        its reply text always set.

        Raises ConfigMissingError before any network call when the client or
        assistant id is missing, and UpstreamUnavailableError on provider
        errors or when the whole turn outlives the deadline. The deadline
        covers every provider call, not just the polling sleeps.
        """
        if not self.configured:
            raise ConfigMissingError("OPENAI_API_KEY or OPENAI_ASSISTANT_ID is not set")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        progress = {}

        try:
            return await asyncio.wait_for(self._execute(message, deadline, progress), self._timeout)
        except asyncio.TimeoutError:
            if "run_id" in progress and not progress.get("cancelled"):
                await self._cancel_quietly(progress["thread_id"], progress["run_id"])
            raise UpstreamUnavailableError(
                f"Assistant turn did not finish within {self._timeout:g}s"
            ) from None
        except openai.OpenAIError as exc:
            raise UpstreamUnavailableError(f"Assistant request failed: {exc}") from exc

    async def _execute(self, message: str, deadline: float, progress: dict) -> ConversationRun:
        threads = self._client.beta.threads

        thread = await threads.create(messages=[{"role": "user", "content": message}])
        progress["thread_id"] = thread.id
        run = await threads.runs.create(thread_id=thread.id, assistant_id=self._assistant_id)
        progress["run_id"] = run.id

        status = await self._wait_for_terminal(thread.id, run, deadline, progress)
        if status is not RunStatus.COMPLETED:
            logger.warning("Run %s on thread %s ended with status %s", run.id, thread.id, status.value)
            error = ErrorResult(ErrorKind.RUN_FAILED, f"Run {run.id} ended with status {status.value}")
            return ConversationRun(thread.id, status, fallback_reply(status), error)

        page = await threads.messages.list(thread.id, order="desc", run_id=run.id)
        text = latest_assistant_text(page.data)
        if text is None:
            logger.warning("Run %s completed without assistant text", run.id)
            return ConversationRun(thread.id, status, NO_REPLY_TEXT)
        return ConversationRun(thread.id, status, sanitize_reply(text))

    async def _wait_for_terminal(self, thread_id: str, run, deadline: float, progress: dict) -> RunStatus:
        loop = asyncio.get_running_loop()
        interval = self._poll_interval

        while True:
            status = _coerce_status(run.status)
            if status in TERMINAL_STATUSES:
                return status
            if status is RunStatus.REQUIRES_ACTION:
                # Tool outputs are never submitted from here
                await self._cancel_quietly(thread_id, run.id)
                return RunStatus.CANCELLED
            if status is RunStatus.INCOMPLETE:
                return RunStatus.FAILED
            if status is None:
                logger.debug("Unrecognised run status %r, still polling", run.status)

            remaining = deadline - loop.time()
            if remaining <= 0:
                progress["cancelled"] = True
                await self._cancel_quietly(thread_id, run.id)
                raise UpstreamUnavailableError(
                    f"Run {run.id} did not finish within {self._timeout:g}s (last status: {run.status})"
                )

            await asyncio.sleep(min(interval, remaining))
            interval = min(interval * BACKOFF_FACTOR, self._poll_max_interval)
            run = await self._client.beta.threads.runs.retrieve(run.id, thread_id=thread_id)

    async def _cancel_quietly(self, thread_id: str, run_id: str) -> None:
        try:
            await asyncio.wait_for(
                self._client.beta.threads.runs.cancel(run_id, thread_id=thread_id),
                CANCEL_TIMEOUT,
            )
        except (openai.OpenAIError, asyncio.TimeoutError) as exc:
            logger.warning("Could not cancel run %s: %r", run_id, exc)
