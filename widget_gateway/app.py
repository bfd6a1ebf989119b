# ============================================================================
# Chat Widget Gateway: HTTP Application
# ----------------------------------------------------------------------------
# FastAPI wiring for the chat widget backend:
# - Origin allow-list enforcement and CORS headers
# - Health probe reporting datastore connectivity
# - Chat turn endpoint (OpenAI Assistant run + Supabase transcript)
# - ChatKit session minting for the hosted widget
#
# Components are built once from Settings in create_app() and stored on
# app.state; tests pass their own runner/transcript logger in.
# ============================================================================

import logging
from contextlib import asynccontextmanager # Startup/shutdown lifecycle
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool # Keeps blocking HTTP off the event loop

from .assistant import AssistantRunner
from .chatkit import create_chatkit_session
from .config import Settings
from .errors import GatewayError
from .origins import install_origin_guard
from .transcripts import TranscriptLogger, create_supabase_client
from .turns import ANONYMOUS_USER, TurnHandler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def _error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[AssistantRunner] = None,
    transcripts: Optional[TranscriptLogger] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if runner is None:
        runner = AssistantRunner.from_settings(settings)
    if transcripts is None:
        transcripts = TranscriptLogger(create_supabase_client(settings), settings.transcript_table)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Env status %s", settings.env_status())
        if not settings.assistant_configured:
            logger.warning(
                "OPENAI_API_KEY or OPENAI_ASSISTANT_ID missing; /api/chat/message will fail until both are set"
            )
        if not settings.datastore_configured:
            logger.info("SUPABASE_URL/SUPABASE_KEY not set; transcripts will not be stored")

        yield

        await app.state.transcripts.drain()

    app = FastAPI(title="Chat Widget Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.transcripts = transcripts
    app.state.turns = TurnHandler(runner, transcripts)

    install_origin_guard(app, settings.allowed_origins)

    # ========================================================================
    # Endpoints
    # ========================================================================

    @app.get("/")
    async def health():
        """Liveness probe; no auth."""
        db = "connected" if app.state.transcripts.connected else "disconnected"
        return {"ok": True, "db": db}

    @app.post("/api/chat/message")
    async def chat_message(req: Request):
        """
        One chat turn: log the question, run the assistant, log the answer,
        return {"reply": ...}. Errors come back as {"error": ...}.
        """
        try:
            data = await req.json()
        except ValueError:
            data = None

        try:
            result = await app.state.turns.handle_payload(data)
        except GatewayError as exc:
            state = exc.state.value if exc.state is not None else "-"
            logger.error("Chat turn failed in state %s: %s", state, exc.result)
            return _error_response(exc)
        except Exception:
            logger.exception("Unhandled error in chat turn")
            return JSONResponse(status_code=500, content={"error": "Server Error"})

        return {"reply": result.reply}

    @app.post("/api/chatkit/session")
    async def chatkit_session(req: Request):
        """Mints a ChatKit client secret for the configured workflow."""
        try:
            data = await req.json()
        except ValueError:
            data = {}

        user = data.get("user") if isinstance(data, dict) else None
        user = str(user) if user else ANONYMOUS_USER

        status_code, body = await run_in_threadpool(
            create_chatkit_session,
            settings.openai_api_key,
            settings.chatkit_workflow_id,
            user,
        )
        return JSONResponse(status_code=status_code, content=body)

    return app
