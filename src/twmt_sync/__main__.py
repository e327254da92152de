"""Entry point for the standalone sync backend."""

import uvicorn

from twmt_sync.config import settings
from twmt_sync.main import app


def main() -> None:
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
