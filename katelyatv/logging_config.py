# katelyatv/logging_config.py
import logging
from typing import Optional

from katelyatv import config


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging for the service.
    Level comes from LOG_LEVEL unless given; an unknown name falls back to WARNING.
    """
    name = (level or config.log_level()).upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.WARNING

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(level=resolved, format='%(asctime)s %(levelname)s [%(name)s]: %(message)s')

    # redis-py is chatty at DEBUG
    logging.getLogger('redis').setLevel(max(resolved, logging.INFO))

    logger = logging.getLogger(__name__)
    logger.info("Log level set to %s", logging.getLevelName(resolved))
    return logger
