"""
Logging utilities for the token vault API and maintenance scripts.

Provides a consistent logging format and configuration.
"""

import logging
import sys

_NOISY_LOGGERS = ("botocore", "boto3", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # AWS SDK debug output can echo request bodies, which contain ciphertext.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
