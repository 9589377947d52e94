"""FastAPI REST API for memorylane.

Run the server with the configured host and port:
    ```bash
    memorylane-api
    ```

Or through uvicorn directly:
    ```bash
    uvicorn memorylane.api:app --reload
    ```
"""

from __future__ import annotations

import uvicorn

from memorylane.config import Settings

from .app import app, create_app, status_for
from .router import router


def serve(settings: Settings | None = None) -> None:
    """Run the API under uvicorn until interrupted."""
    settings = settings or Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


__all__ = [
    "app",
    "create_app",
    "router",
    "serve",
    "status_for",
]
