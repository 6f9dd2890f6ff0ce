#!/usr/bin/env python3
"""
Server runner script.

Starts the engagement API with uvicorn using HOST, PORT and RELOAD from the environment.
"""

import os
import sys

import uvicorn

from secaware.common.logger import get_logger

logger = get_logger("secaware.scripts.run_server")


def main():
    """Run the API server."""
    try:
        host = os.getenv("HOST", "0.0.0.0")
        port = int(os.getenv("PORT", 8000))
        reload_enabled = os.getenv("RELOAD", "false").lower() == "true"

        logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

        uvicorn.run(
            "secaware.main:app",
            host=host,
            port=port,
            reload=reload_enabled,
            log_level="info"
        )

    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
