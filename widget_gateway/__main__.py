# ============================================================================
# Entrypoint: `python -m widget_gateway` or the `widget-gateway` script
# ============================================================================

import uvicorn # ASGI server

from .app import create_app
from .config import Settings


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
