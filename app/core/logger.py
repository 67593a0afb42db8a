# app/core/logger.py

import logging
import sys

from app.core.config import settings

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

logger = logging.getLogger("portal")
logger.setLevel(settings.LOG_LEVEL.upper())
logger.propagate = False  # Prevent log duplication

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Child of the portal logger, e.g. `portal.lifecycle`; shares its handler and level."""
    return logger.getChild(name)
