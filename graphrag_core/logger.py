import logging
import sys
from pythonjsonlogger.json import JsonFormatter

from graphrag_core.config import settings

# Loggers created through get_logger, so their level can be changed together
_managed_loggers = set()

def get_logger(name: str):
    """
    Returns a logger that writes one JSON object per record to stdout.
    Context such as method, path or task id goes through `extra`.
    """
    logger = logging.getLogger(name)
    _managed_loggers.add(name)

    # Prevent duplicate handlers if the logger is already configured
    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s'
    ))
    logger.addHandler(handler)
    logger.propagate = False

    return logger

def configure_logging(level: str):
    """Applies one level to every client logger and keeps httpx's own request logs quiet."""
    for name in _managed_loggers:
        logging.getLogger(name).setLevel(level.upper())
    logging.getLogger("httpx").setLevel(logging.WARNING)
