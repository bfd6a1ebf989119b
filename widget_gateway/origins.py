# ============================================================================
# Origin Gatekeeper
# ----------------------------------------------------------------------------
# Runs before anything else on every request. Browsers always send an Origin
# header on cross-site calls; curl, Postman and server-to-server callers do
# not, and are let through.
# ============================================================================

import logging
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import OriginDeniedError

logger = logging.getLogger(__name__)


def is_origin_allowed(origin: Optional[str], allowed_origins: Sequence[str]) -> bool:
    """Decide allow/deny for a declared request origin."""
    if not allowed_origins:
        return True  # permissive default
    if not origin:
        return True
    return origin in allowed_origins


def check_origin(origin: Optional[str], allowed_origins: Sequence[str]) -> None:
    if not is_origin_allowed(origin, allowed_origins):
        raise OriginDeniedError(f"Origin {origin!r} is not in the allow-list")


def install_origin_guard(app: FastAPI, allowed_origins: Sequence[str]) -> None:
    """
    Attach CORS headers for permitted origins and reject everything else
    with a 403 before routing. The guard wraps the CORS middleware, so
    preflight requests pass through it too.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins) or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def origin_guard(request: Request, call_next):
        origin = request.headers.get("origin")
        try:
            check_origin(origin, allowed_origins)
        except OriginDeniedError as exc:
            logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})
        return await call_next(request)
