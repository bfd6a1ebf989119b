# ============================================================================
# ChatKit Session Minting
# ----------------------------------------------------------------------------
# The hosted ChatKit widget authenticates with a short-lived client secret.
# This module asks the provider for one on behalf of the browser so the API
# key never leaves the server.
# ============================================================================

import logging
from typing import Optional, Tuple

import requests # Plain synchronous HTTP; called from a threadpool route

logger = logging.getLogger(__name__)

CHATKIT_SESSIONS_URL = "https://api.openai.com/v1/chatkit/sessions"
REQUEST_TIMEOUT = 15


def create_chatkit_session(
    api_key: Optional[str],
    workflow_id: Optional[str],
    user: str,
    session: Optional[requests.Session] = None,
) -> Tuple[int, dict]:
    """Return (status_code, body) to relay to the widget."""
    if not api_key or not workflow_id:
        return 500, {"error": "Missing env vars"}

    http = session or requests
    try:
        response = http.post(
            CHATKIT_SESSIONS_URL,
            json={"user": user, "workflow": {"id": workflow_id}},
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
                "OpenAI-Beta": "chatkit_beta=v1",
            },
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException:
        logger.exception("ChatKit session request failed")
        return 500, {"error": "Upstream request failed"}

    try:
        data = response.json()
    except ValueError:
        data = {"error": "Invalid JSON from upstream"}

    if response.ok:
        secret = data.get("client_secret") if isinstance(data, dict) else None
        return 200, {"client_secret": secret}

    logger.warning("ChatKit session rejected with HTTP %s", response.status_code)
    return response.status_code, data
