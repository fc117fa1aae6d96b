#!/usr/bin/env python3
"""
Assessment service runner script.

This script starts the FastAPI server with the configuration taken from the
environment.
"""

import os
import sys

import uvicorn

from edusync.common.logger import get_logger

logger = get_logger("edusync.scripts.run_server")


def main():
    """Run the assessment service."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload_enabled = os.getenv("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    try:
        uvicorn.run(
            "edusync.main:app",
            host=host,
            port=port,
            reload=reload_enabled,
            log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
