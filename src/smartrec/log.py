"""
Logging setup shared by the server and the scripts.

Modules log through ``logging.getLogger(__name__)``; the entry points call
``setup_logging()`` once at startup.
"""

import logging
import os
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None, format: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Configure the root logger and return the package logger.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL env var or INFO.
        format: Log format string.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format=format, stream=sys.stdout)

    logger = logging.getLogger("smartrec")
    logger.setLevel(log_level)
    return logger
