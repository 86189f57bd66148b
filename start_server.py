#!/usr/bin/env python3
"""
Startup script for the Department Scheduler backend
"""

import logging
import os

import uvicorn
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def main():
    load_dotenv()

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "false").lower() == "true"

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    logger.info(f"Starting Department Scheduler on {host}:{port} (reload={reload})")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    main()
