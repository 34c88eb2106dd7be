"""Main entry point for SwarmCore."""

import os

import uvicorn
from dotenv import load_dotenv

from .api import create_fastapi_app
from .config import PROJECT_ROOT
from .logging_config import setup_logging


def main():
    """Run the application."""
    load_dotenv(PROJECT_ROOT / ".env")
    setup_logging()

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))

    app = create_fastapi_app()

    # Logging is already configured; keep uvicorn from replacing it
    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
