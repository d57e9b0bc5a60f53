"""
Process entry point.

Responsibilities:
- Load .env and configuration
- Run the status API (and with it the viewer) under uvicorn
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig
from server.app import create_app


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        create_app(config),
        host=config.status_host,
        port=config.status_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
