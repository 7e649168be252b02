"""
Run the Coderoom server.

Usage: python -m coderoom

Configuration is read from the environment (see ``coderoom.config``).
"""

import logging

import uvicorn

from coderoom.config import Settings
from coderoom.server import CoderoomServer


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = CoderoomServer.from_settings(settings).app
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
