import logging
import sys

from florist.config import settings


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger writing to stdout as "[NAME] message".
    The handler is attached once, so repeated calls (module reloads, tests) don't duplicate output.
    """
    log = logging.getLogger(f"florist.{name}")
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(f"[{name.upper()}] %(levelname)s %(message)s"))
        log.addHandler(h)
        log.propagate = False
    return log
