"""
Logging setup for applications embedding genloop.
"""

import logging
from typing import Optional

from .config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> int:
    """
    Configure root logging and the ``genloop`` logger.

    Args:
        config: Logging settings; environment defaults when None.

    Returns:
        The numeric level applied.
    """
    config = config or LoggingConfig()
    log_level = getattr(logging, config.level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=config.format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("genloop").setLevel(log_level)
    return log_level
