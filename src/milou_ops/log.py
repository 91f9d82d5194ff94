"""
Logging setup for Milou operations.

Every module logs through logging.getLogger(__name__); applications call
configure_logging() once to route records to stderr.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[int] = None) -> None:
    """Configure the root logger.

    Args:
        level: Log level (defaults to DEBUG when MILOU_DEBUG=true, else INFO)
    """
    if level is None:
        debug = os.environ.get("MILOU_DEBUG", "").lower() == "true"
        level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
