import os
import sys
import logging
from aiohttp import web
from dotenv import load_dotenv

from src.infrastructure.platform_clients import build_platform_clients
from src.infrastructure.registry import InMemoryRepositoryRegistry
from src.presentation.routes import create_app

DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def get_port() -> int:
    raw_port = os.getenv("PORT")
    if not raw_port:
        return DEFAULT_PORT
    try:
        return int(raw_port)
    except ValueError:
        logger.warning(f"Invalid PORT value '{raw_port}'. Falling back to {DEFAULT_PORT}.")
        return DEFAULT_PORT


def main():
    # Load environment variables from .env file
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL))

    port = get_port()
    app = create_app(
        registry=InMemoryRepositoryRegistry(),
        clients=build_platform_clients(),
    )

    logger.info(f"CI status dashboard running at http://localhost:{port}")
    web.run_app(app, port=port, print=None)

if __name__ == "__main__":
    main()
