"""
Logging setup shared by the manager, the store adapters and the sync server.
"""

import logging
import sys
from typing import Optional

from chore_anchors.config import Settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure the root logger.

    Args:
        config: Settings instance, uses the module-level settings if None
    """
    if config is None:
        from chore_anchors.config import settings as config

    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO),
                        format=LOG_FORMAT,
                        handlers=[logging.StreamHandler(sys.stdout)])


def get_logger(name: str) -> logging.Logger:
    """Get a module logger (usually called with __name__)."""
    return logging.getLogger(name)
