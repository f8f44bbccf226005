import os
import sys

import uvicorn

from smtp_relay.api import create_app
from smtp_relay.cli import build_relay
from smtp_relay.config import load_settings
from smtp_relay.errors import ConfigurationError
from smtp_relay.logger import configure_logging, get_logger

# Configure logging level from environment
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger()


if __name__ == "__main__":
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    app = create_app(build_relay(settings), api_token=settings.api_token)

    logger.info("Server starting on port %s", settings.http_port)
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        proxy_headers=True,
        forwarded_allow_ips=settings.trusted_proxies,
    )
