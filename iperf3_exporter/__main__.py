"""Entry point for the iperf3 exporter."""
import logging
import sys

import uvicorn

from .config import load_settings
from .exceptions import ConfigError
from .logging_config import configure_logging
from .main import create_app


def main(argv=None) -> None:
    """Load configuration and serve the exporter."""
    try:
        settings = load_settings(argv)
    except ConfigError as e:
        configure_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        sys.exit(1)

    configure_logging(settings.logging.level, settings.logging.format)
    logger = logging.getLogger(__name__)

    logger.info(
        f"Starting iperf3 exporter on {settings.host}:{settings.port} "
        f"with {len(settings.targets)} targets"
    )

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.logging.level.replace("warn", "warning"),
    )


if __name__ == "__main__":
    main()
