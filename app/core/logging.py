"""
Logging setup shared by the API process and the command-line tools.
"""

import logging
import sys
from typing import Iterable

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Client libraries that log every request or retry at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "google.auth", "urllib3")


def configure_logging(level: str = "INFO", noisy: Iterable[str] = NOISY_LOGGERS) -> None:
    """Send records to stdout in a pipe-separated format and quiet SDK chatter."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stdout)
    for name in noisy:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["LOG_FORMAT", "NOISY_LOGGERS", "configure_logging"]
