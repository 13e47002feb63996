import logging
import sys

from lending.config import settings

_FORMAT = "[LENDING] %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger writing to stdout. Handlers are attached once per
    logger so repeated imports don't duplicate output.
    """
    log = logging.getLogger(name)
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(_FORMAT))
        log.addHandler(h)
    return log
