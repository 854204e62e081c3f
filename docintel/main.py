"""Application entry point for the Document Intelligence API server."""

import uvicorn

from docintel.api.app import app
from docintel.utils.config import load_config
from docintel.utils.logger import setup_logging


def main() -> None:
    """Start the API server on the configured host and port."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
