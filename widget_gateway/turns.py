# ============================================================================
# Chat Turn Handling
# ----------------------------------------------------------------------------
# Composes persistence and the assistant run for one request:
#
#   received -> question_logged -> run_pending -> run_resolved
#            -> answer_logged -> responded
#
# Both transcript writes are best-effort. The question write is issued as a
# background task and overlaps the run; it is allowed to settle before the
# answer is written so the two rows land in order.
# ============================================================================

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from .assistant import AssistantRunner
from .errors import ConfigMissingError, InvalidRequestError, UpstreamUnavailableError
from .transcripts import TranscriptKind, TranscriptLogger, TranscriptRecord

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


class TurnState(str, Enum):
    RECEIVED = "received"
    QUESTION_LOGGED = "question_logged"
    RUN_PENDING = "run_pending"
    RUN_RESOLVED = "run_resolved"
    ANSWER_LOGGED = "answer_logged"
    RESPONDED = "responded"
    REJECTED = "rejected"
    CONFIG_ERROR = "config_error"
    UPSTREAM_ERROR = "upstream_error"


@dataclass(frozen=True)
class ChatTurnRequest:
    user: str
    message: str

    @classmethod
    def from_payload(cls, data) -> "ChatTurnRequest":
        """Validate a decoded JSON body."""
        if not isinstance(data, dict):
            raise InvalidRequestError("Missing message")

        message = data.get("message")
        if message is None or not str(message).strip():
            raise InvalidRequestError("Missing message")

        user = data.get("user")
        user = str(user).strip() if user is not None else ""
        return cls(user=user or ANONYMOUS_USER, message=str(message))


@dataclass
class TurnResult:
    reply: str
    state: TurnState
    history: List[TurnState] = field(default_factory=list)


class TurnHandler:
    """Runs exactly one assistant run per ChatTurnRequest."""

    def __init__(self, runner: AssistantRunner, transcripts: TranscriptLogger):
        self.runner = runner
        self.transcripts = transcripts

    async def handle_payload(self, data) -> TurnResult:
        """Validate a decoded JSON body (None when it was not JSON) and run the turn."""
        try:
            request = ChatTurnRequest.from_payload(data)
        except InvalidRequestError as exc:
            exc.state = TurnState.REJECTED
            logger.debug("turn state=%s", TurnState.REJECTED.value)
            raise
        return await self.handle(request)

    async def handle(self, request: ChatTurnRequest) -> TurnResult:
        history = [TurnState.RECEIVED]

        def advance(state: TurnState) -> None:
            history.append(state)
            logger.debug("turn user=%s state=%s", request.user, state.value)

        question_task = self.transcripts.save_in_background(
            TranscriptRecord(request.user, request.message, TranscriptKind.USER_QUESTION)
        )
        advance(TurnState.QUESTION_LOGGED)

        advance(TurnState.RUN_PENDING)
        try:
            run = await self.runner.run_turn(request.message)
        except ConfigMissingError as exc:
            advance(TurnState.CONFIG_ERROR)
            exc.state = TurnState.CONFIG_ERROR
            raise
        except UpstreamUnavailableError as exc:
            advance(TurnState.UPSTREAM_ERROR)
            exc.state = TurnState.UPSTREAM_ERROR
            raise
        advance(TurnState.RUN_RESOLVED)
        if run.error is not None:
            logger.info("turn user=%s degraded (%s): %s", request.user, run.error.kind.value, run.error.message)

        if question_task is not None:
            # save_quietly never raises, so this only waits
            await asyncio.wait({question_task})

        await self.transcripts.save_quietly(
            TranscriptRecord(request.user, run.reply, TranscriptKind.AI_ANSWER)
        )
        advance(TurnState.ANSWER_LOGGED)

        advance(TurnState.RESPONDED)
        return TurnResult(reply=run.reply, state=TurnState.RESPONDED, history=history)
