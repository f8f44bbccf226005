"""Logging helpers for the SMTP relay."""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once, from the process entry point."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
    )


def get_logger(name: str = "SMTPRelay") -> logging.Logger:
    """Return a configured :class:`logging.Logger` instance.

    Note: handlers are installed by :func:`configure_logging` in the entry
    point, never here, to avoid duplicate output.
    """
    return logging.getLogger(name)
