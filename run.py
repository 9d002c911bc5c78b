#!/usr/bin/env python3
"""
SecureBank Entry Point

Starts the FastAPI server with host, port and database taken from
SECUREBANK_* environment variables (or .env).
"""

import sys

import uvicorn

from securebank.config import get_config
from securebank.logging_config import setup_logging


def run_server(host: str, port: int, log_level: str = "INFO", debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "securebank.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=log_level.lower()
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format)
    logger.info(f"Starting {config.bank_name} on http://{config.api_host}:{config.api_port} "
                f"(database: {config.database_url})")

    try:
        run_server(config.api_host, config.api_port, config.log_level)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
