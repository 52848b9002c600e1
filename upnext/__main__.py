"""Serve the metadata API with ``python -m upnext`` or the ``upnext`` script."""

from __future__ import annotations

import uvicorn

from upnext.config import settings


def main() -> None:
    development = settings.environment == "development"
    uvicorn.run(
        "upnext.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=development,
        log_level="debug" if development else "info",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
