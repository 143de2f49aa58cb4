import logging
import sys

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the ``gamewatch`` logger hierarchy.

    Console output goes to stdout. Calling this again only adjusts the level,
    so importing the app more than once does not duplicate log lines.
    """
    logger = logging.getLogger("gamewatch")
    logger.setLevel(level.upper())
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
