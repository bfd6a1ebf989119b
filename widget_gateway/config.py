# ============================================================================
# Gateway Configuration
# ----------------------------------------------------------------------------
# Every environment variable the gateway understands is read here, once, at
# process start. The result is a frozen Settings value that is handed to the
# components that need it; nothing else in the package touches os.environ.
# ============================================================================

import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv # Loads a local .env without overriding real env vars

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_TABLE = "chat_logs"
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_POLL_MAX_INTERVAL = 4.0
DEFAULT_RUN_TIMEOUT = 60.0


# ============================================================================
# Parsing Helpers
# ============================================================================

def _clean(value: Optional[str]) -> Optional[str]:
    # Blank strings count as "not configured"
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated ALLOWED_ORIGINS value, dropping blanks."""
    if not raw:
        return ()
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def _float_env(env, name: str, default: float) -> float:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def _int_env(env, name: str, default: int) -> int:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


# ============================================================================
# Settings
# ============================================================================

@dataclass(frozen=True)
class Settings:
    """Immutable process-wide configuration."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    transcript_table: str = DEFAULT_TABLE
    openai_api_key: Optional[str] = None
    assistant_id: Optional[str] = None
    chatkit_workflow_id: Optional[str] = None
    allowed_origins: Tuple[str, ...] = ()
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_max_interval: float = DEFAULT_POLL_MAX_INTERVAL
    run_timeout: float = DEFAULT_RUN_TIMEOUT
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env=None, load_dotenv_file: bool = True) -> "Settings":
        """
        Build settings from the environment. Passing an explicit mapping
        skips the .env lookup so callers get exactly what they passed.
        """
        if env is None:
            if load_dotenv_file:
                load_dotenv()
            env = os.environ

        return cls(
            supabase_url=_clean(env.get("SUPABASE_URL")),
            supabase_key=_clean(env.get("SUPABASE_KEY")),
            transcript_table=_clean(env.get("SUPABASE_TABLE")) or DEFAULT_TABLE,
            openai_api_key=_clean(env.get("OPENAI_API_KEY")),
            assistant_id=_clean(env.get("OPENAI_ASSISTANT_ID")),
            chatkit_workflow_id=_clean(env.get("CHATKIT_WORKFLOW_ID")),
            allowed_origins=parse_origins(env.get("ALLOWED_ORIGINS")),
            poll_interval=_float_env(env, "RUN_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            poll_max_interval=_float_env(env, "RUN_POLL_MAX_INTERVAL", DEFAULT_POLL_MAX_INTERVAL),
            run_timeout=_float_env(env, "RUN_TIMEOUT", DEFAULT_RUN_TIMEOUT),
            port=_int_env(env, "PORT", DEFAULT_PORT),
            log_level=(_clean(env.get("LOG_LEVEL")) or "INFO").upper(),
        )

    @property
    def datastore_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def assistant_configured(self) -> bool:
        return bool(self.openai_api_key and self.assistant_id)

    def env_status(self) -> dict:
        """Presence flags only; safe to log."""
        return {
            "openaiApiKeyPresent": bool(self.openai_api_key),
            "assistantIdPresent": bool(self.assistant_id),
            "chatkitWorkflowIdPresent": bool(self.chatkit_workflow_id),
            "datastoreConfigured": self.datastore_configured,
            "allowedOriginsConfigured": bool(self.allowed_origins),
        }
